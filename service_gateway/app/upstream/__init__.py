"""
Upstream package for the Gateway.

Gemini HTTP clients, the closed classification of their failures and the
resilient caller that retries transient overload.
"""

from .gemini_client import (
    GeminiChatClient,
    GeminiSpeechClient,
    SpeechAudio,
    UpstreamError,
    UpstreamResponseError,
)
from .outcomes import FailureKind, FatalFailure, Success, TransientFailure, classify_failure
from .resilient import ResilientCaller

__all__ = [
    "FailureKind",
    "FatalFailure",
    "GeminiChatClient",
    "GeminiSpeechClient",
    "ResilientCaller",
    "SpeechAudio",
    "Success",
    "TransientFailure",
    "UpstreamError",
    "UpstreamResponseError",
    "classify_failure",
]
