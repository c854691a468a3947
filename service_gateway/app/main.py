"""
AI quota gateway service.
"""

import asyncio
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import AuthorizationError, GatewayException, RateLimitedError
from shared.logging import set_caller_context
from shared.retry import RetryConfig

from service_gateway.app.domain.handlers import ChatHandler, RequestHandler, SpeechHandler
from service_gateway.app.ratelimit.coordinator import RateLimitCoordinator
from service_gateway.app.ratelimit.counter_store import CounterStore, build_counter_store
from service_gateway.app.ratelimit.tiers import UNKNOWN_CALLER, chat_tiers, speech_tiers
from service_gateway.app.upstream.gemini_client import (
    DEFAULT_SYSTEM_PROMPT,
    GeminiChatClient,
    GeminiSpeechClient,
)
from service_gateway.app.upstream.resilient import ResilientCaller

ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class GatewayService(BaseService):
    """API Gateway service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 counter_store: Optional[CounterStore] = None,
                 chat_client: Optional[GeminiChatClient] = None,
                 speech_client: Optional[GeminiSpeechClient] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        super().__init__("gateway", 8000, config=config or get_config("gateway", 8000))

        if not self.config.gemini_api_key:
            self.logger.warning("GEMINI_API_KEY is not set, upstream calls will be rejected")

        self.counter_store = counter_store or build_counter_store(
            self.config.counter_store_backend,
            self.config.redis_url,
            timeout=self.config.counter_store_timeout,
        )
        self.retry_config = RetryConfig(
            max_attempts=self.config.upstream_max_retries,
            base_delay=self.config.upstream_base_delay,
        )

        self.chat_client = chat_client or GeminiChatClient(
            self.config.gemini_api_key,
            self.config.gemini_chat_model,
            system_prompt=self._load_system_prompt(),
            base_url=self.config.gemini_base_url,
            timeout=self.config.gemini_timeout,
        )
        self.speech_client = speech_client or GeminiSpeechClient(
            self.config.gemini_api_key,
            self.config.gemini_tts_model,
            voice=self.config.gemini_tts_voice,
            base_url=self.config.gemini_base_url,
            timeout=self.config.gemini_timeout,
        )

        self.chat_handler = ChatHandler(
            RateLimitCoordinator("chat", chat_tiers(self.config), self.counter_store, self.metrics),
            ResilientCaller(self.chat_client, self.retry_config, self.metrics, sleep=sleep),
            self.chat_client,
        )
        self.speech_handler = SpeechHandler(
            RateLimitCoordinator("tts", speech_tiers(self.config), self.counter_store, self.metrics),
            ResilientCaller(self.speech_client, self.retry_config, self.metrics, sleep=sleep),
            self.speech_client,
        )

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    async def shutdown(self):
        await self.counter_store.close()

    def _load_system_prompt(self) -> str:
        if self.config.system_prompt_file:
            return Path(self.config.system_prompt_file).read_text(encoding="utf-8")
        return DEFAULT_SYSTEM_PROMPT

    def _setup_gateway_routes(self):
        """Set up gateway routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": "gateway",
                "message": "AI Quota Gateway",
                "routes": ["/api/chat", "/api/tts"],
            }

        @self.app.api_route("/api/chat", methods=ROUTE_METHODS)
        async def chat(request: Request):
            return await self._dispatch(request, self.chat_handler)

        @self.app.api_route("/api/tts", methods=ROUTE_METHODS)
        async def tts(request: Request):
            return await self._dispatch(request, self.speech_handler)

    async def _dispatch(self, request: Request, handler: RequestHandler):
        """Run one inbound request through its handler."""
        if request.method == "OPTIONS":
            return JSONResponse(status_code=200, content={})
        if request.method != "POST":
            return JSONResponse(status_code=405, content={"error": "Method not allowed"})

        self._check_app_secret(request)

        caller = self._get_client_ip(request)
        set_caller_context(caller, route=handler.name)

        body = await self._read_json(request)
        return await handler.handle(caller, body)

    def _check_app_secret(self, request: Request) -> None:
        """Pass/fail boundary check, active only when a secret is configured."""
        secret = self.config.app_secret
        if secret and request.headers.get("X-App-Secret") != secret:
            raise AuthorizationError()

    async def _read_json(self, request: Request) -> Any:
        try:
            return await request.json()
        except ValueError:
            return None

    def _get_client_ip(self, request: Request) -> str:
        """Extract the caller IP from standard headers."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and forwarded_for.split(",")[0].strip():
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
        if request.client and request.client.host:
            return request.client.host
        return UNKNOWN_CALLER

    def _error_headers(self, exc: GatewayException) -> Dict[str, str]:
        if isinstance(exc, RateLimitedError):
            wait = (exc.reset_at - datetime.now(timezone.utc)).total_seconds()
            return {"Retry-After": str(max(0, math.ceil(wait)))}
        return {}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report counter store reachability; the gateway fails open without it."""
        healthy = await self.counter_store.ping()
        return {"counter_store": f"{self.counter_store.name}:{'ok' if healthy else 'degraded'}"}


def create_app(**kwargs):
    """Create FastAPI application."""
    service = GatewayService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
