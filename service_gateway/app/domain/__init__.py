"""
Domain helpers for the Gateway.

- models: inbound request bodies
- handlers: admission, validation and upstream forwarding per route
"""

from .handlers import ChatHandler, RequestHandler, SpeechHandler, failure_to_error
from .models import ChatRequest, HistoryMessage, SpeechRequest

__all__ = [
    "ChatHandler",
    "ChatRequest",
    "HistoryMessage",
    "RequestHandler",
    "SpeechHandler",
    "SpeechRequest",
    "failure_to_error",
]
