"""
Shared error handling for the AI quota gateway.

Every client-visible failure is a ``GatewayException`` carrying its own HTTP
status. Classification happens where the failure is detected; the HTTP layer
only renders.
"""

from datetime import datetime
from typing import Dict, Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    error: str
    reason: Optional[str] = None
    resetTime: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class GatewayException(Exception):
    """Base exception for gateway errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, include_details: bool = False) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            error=self.message,
            details=self.details if include_details and self.details else None,
        )


class InvalidInputError(GatewayException):
    """Missing or malformed required field."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class AuthorizationError(GatewayException):
    """App secret missing or wrong."""

    status_code = 403

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__("UNAUTHORIZED", message, details)


class RateLimitedError(GatewayException):
    """A quota tier denied the request."""

    status_code = 429

    def __init__(self, tier: str, reset_at: datetime, message: str = "Rate limit exceeded",
                 details: Optional[Dict[str, Any]] = None):
        self.tier = tier
        self.reset_at = reset_at
        super().__init__("RATE_LIMITED", message, details)

    @property
    def reset_time_ms(self) -> int:
        return int(self.reset_at.timestamp() * 1000)

    def to_response(self, include_details: bool = False) -> ErrorResponse:
        response = super().to_response(include_details)
        response.reason = self.tier
        response.resetTime = self.reset_time_ms
        return response


class UpstreamUnavailableError(GatewayException):
    """Upstream overloaded past the retry budget, or unreachable."""

    status_code = 503

    def __init__(self, message: str = "AI service is temporarily overloaded. Please try again in a moment.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class UpstreamQuotaExhaustedError(GatewayException):
    """Upstream quota exhausted; never retried by the gateway."""

    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable. Please try again later.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_QUOTA_EXHAUSTED", message, details)


class UpstreamProtocolError(GatewayException):
    """Upstream answered with something the gateway cannot use."""

    status_code = 502

    def __init__(self, message: str = "Invalid response from AI service", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_PROTOCOL_ERROR", message, details)


class InternalError(GatewayException):
    """Unclassified failure."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)


class CounterStoreError(Exception):
    """The counter store could not be reached.

    Never rendered to clients: the rate limit coordinator turns it into a
    fail-open admission.
    """
