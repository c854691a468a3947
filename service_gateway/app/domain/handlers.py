"""
Request handlers for the chat and speech routes.

A handler runs admission first, then validates input, then makes exactly one
resilient upstream call. It maps decisions and failure kinds to gateway
errors but never inspects raw provider errors itself.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from shared.errors import (
    GatewayException,
    InternalError,
    InvalidInputError,
    RateLimitedError,
    UpstreamProtocolError,
    UpstreamQuotaExhaustedError,
    UpstreamUnavailableError,
)
from shared.logging import get_logger

from service_gateway.app.domain.models import ChatRequest, SpeechRequest
from service_gateway.app.ratelimit.coordinator import RateLimitCoordinator
from service_gateway.app.upstream.gemini_client import GeminiChatClient, GeminiSpeechClient
from service_gateway.app.upstream.outcomes import FailureKind, FatalFailure
from service_gateway.app.upstream.resilient import ResilientCaller

FAILURE_ERRORS: Dict[FailureKind, Type[GatewayException]] = {
    FailureKind.QUOTA_EXHAUSTED: UpstreamQuotaExhaustedError,
    FailureKind.UNAVAILABLE: UpstreamUnavailableError,
    FailureKind.OVERLOADED: UpstreamUnavailableError,
    FailureKind.PROTOCOL: UpstreamProtocolError,
    FailureKind.REJECTED: UpstreamProtocolError,
    FailureKind.INTERNAL: InternalError,
}


def failure_to_error(failure: FatalFailure) -> GatewayException:
    """Map a fatal call outcome to the client-facing error."""
    error_cls = FAILURE_ERRORS.get(failure.kind, InternalError)
    return error_cls(details={"kind": failure.kind.value, "attempts": failure.attempts, "error": failure.message})


def parse_body(model: Type[BaseModel], body: Any) -> BaseModel:
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        errors = e.errors()
        fields = [".".join(str(part) for part in err.get("loc", ())) or "body" for err in errors]
        message = errors[0].get("msg", "Invalid input").removeprefix("Value error, ")
        raise InvalidInputError(f"{fields[0]}: {message}", details={"fields": fields})


class RequestHandler:
    """Admission, validation and one upstream call."""

    request_model: Type[BaseModel] = BaseModel

    def __init__(self, name: str, coordinator: RateLimitCoordinator, caller: ResilientCaller):
        self.name = name
        self.coordinator = coordinator
        self.caller = caller
        self.logger = get_logger(f"gateway.handler.{name}")

    async def handle(self, caller_identity: Optional[str], body: Any) -> Dict[str, Any]:
        decision = await self.coordinator.admit(caller_identity)
        if not decision.allowed:
            raise RateLimitedError(decision.violated_tier, decision.reset_at, decision.message)

        request = parse_body(self.request_model, body)
        outcome = await self.caller.call(self.build_payload(request))

        if isinstance(outcome, FatalFailure):
            raise failure_to_error(outcome)
        return self.render(outcome.payload)

    def build_payload(self, request: BaseModel) -> Any:
        raise NotImplementedError

    def render(self, result: Any) -> Dict[str, Any]:
        raise NotImplementedError


class ChatHandler(RequestHandler):
    request_model = ChatRequest

    def __init__(self, coordinator: RateLimitCoordinator, caller: ResilientCaller, client: GeminiChatClient):
        super().__init__("chat", coordinator, caller)
        self.client = client

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        history = [turn.model_dump() for turn in request.conversationHistory]
        return self.client.build_payload(request.message, history)

    def render(self, text: str) -> Dict[str, Any]:
        return {
            "response": text,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }


class SpeechHandler(RequestHandler):
    request_model = SpeechRequest

    def __init__(self, coordinator: RateLimitCoordinator, caller: ResilientCaller, client: GeminiSpeechClient):
        super().__init__("tts", coordinator, caller)
        self.client = client

    def build_payload(self, request: SpeechRequest) -> Dict[str, Any]:
        return self.client.build_payload(request.text)

    def render(self, audio) -> Dict[str, Any]:
        return {"audioData": audio.data, "mimeType": audio.mime_type}
