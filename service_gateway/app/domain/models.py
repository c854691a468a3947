"""
Inbound request bodies for the gateway routes.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator


class HistoryMessage(BaseModel):
    """One prior turn of a conversation."""

    role: str = Field(min_length=1)
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    conversationHistory: List[HistoryMessage] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message is required")
        return value


class SpeechRequest(BaseModel):
    text: str

    @field_validator("text")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text is required")
        return value
