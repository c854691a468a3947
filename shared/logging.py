"""
Structured logging for the AI quota gateway.

Request-scoped fields (request id, route, caller) live in structlog's
contextvars store. They are bound once per request and merged into every
event logged while that request is in flight, including events from the
coordinator and the resilient caller, which never see the request itself.
"""

import logging
import sys
import uuid
from typing import Any, Callable, Dict, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

EventDict = Dict[str, Any]


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure JSON logging for a service."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            service_context(service_name),
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def service_context(service_name: str) -> Callable[[Any, str, EventDict], EventDict]:
    """Processor stamping every event with the owning service."""

    def add_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the inbound request id, generating one if the client sent none."""
    request_id = request_id or str(uuid.uuid4())
    bind_contextvars(request_id=request_id)
    return request_id


def set_caller_context(caller_id: Optional[str] = None, route: Optional[str] = None) -> None:
    """Bind the caller identity and the rate-limited route for this request."""
    fields = {"caller_id": caller_id, "route": route}
    bound = {name: value for name, value in fields.items() if value}
    if bound:
        bind_contextvars(**bound)


def clear_context() -> None:
    clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
