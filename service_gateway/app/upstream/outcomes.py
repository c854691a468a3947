"""
Closed classification of upstream call results.

Raw provider errors are inspected exactly once, here. Everything downstream
of the resilient caller only sees a ``FailureKind``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

import httpx

from service_gateway.app.upstream.gemini_client import UpstreamError, UpstreamResponseError


class FailureKind(Enum):
    """Why an upstream call failed."""
    OVERLOADED = "overloaded"            # capacity; retried
    QUOTA_EXHAUSTED = "quota_exhausted"  # never retried
    UNAVAILABLE = "unavailable"          # retries exhausted or unreachable
    PROTOCOL = "protocol"                # malformed or empty response
    REJECTED = "rejected"                # any other upstream error status
    INTERNAL = "internal"

    @property
    def transient(self) -> bool:
        return self is FailureKind.OVERLOADED


@dataclass(frozen=True)
class Success:
    payload: Any
    attempts: int = 1


@dataclass(frozen=True)
class TransientFailure:
    kind: FailureKind
    cause: Optional[BaseException] = None


@dataclass(frozen=True)
class FatalFailure:
    kind: FailureKind
    cause: Optional[BaseException] = None
    attempts: int = 1

    @property
    def message(self) -> str:
        return str(self.cause) if self.cause else self.kind.value


CallOutcome = Union[Success, TransientFailure, FatalFailure]

OVERLOADED_STATUSES = {503}
QUOTA_STATUSES = {429}


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised by an upstream client to a ``FailureKind``."""
    if isinstance(exc, UpstreamResponseError):
        return FailureKind.PROTOCOL

    if isinstance(exc, UpstreamError):
        return _classify_upstream_error(exc)

    if isinstance(exc, httpx.TransportError):
        return FailureKind.UNAVAILABLE

    return FailureKind.INTERNAL


def _classify_upstream_error(exc: UpstreamError) -> FailureKind:
    # Status code and status name win over message text; quota beats overload
    if exc.status_code in QUOTA_STATUSES or exc.status == "RESOURCE_EXHAUSTED":
        return FailureKind.QUOTA_EXHAUSTED
    if exc.status_code in OVERLOADED_STATUSES or exc.status == "UNAVAILABLE":
        return FailureKind.OVERLOADED

    message = (exc.message or "").lower()
    if "quota" in message:
        return FailureKind.QUOTA_EXHAUSTED
    if "overloaded" in message:
        return FailureKind.OVERLOADED
    return FailureKind.REJECTED


def to_outcome(exc: BaseException, attempts: int = 1) -> Union[TransientFailure, FatalFailure]:
    kind = classify_failure(exc)
    if kind.transient:
        return TransientFailure(kind=kind, cause=exc)
    return FatalFailure(kind=kind, cause=exc, attempts=attempts)
