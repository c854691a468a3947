"""
Unit tests for Gateway main service.
"""

import pytest
from fastapi.testclient import TestClient

from service_gateway.app.main import GatewayService, create_app
from service_gateway.app.ratelimit.counter_store import DisabledCounterStore, LocalCounterStore, RedisCounterStore
from service_gateway.app.upstream.gemini_client import GeminiChatClient, GeminiSpeechClient
from shared.test_helpers import (
    FixedClock,
    RecordingSleep,
    ScriptedTransport,
    gemini_audio_response,
    gemini_error,
    gemini_text_response,
    make_test_config,
    overloaded,
    quota_exceeded,
)


class ClosingStore(LocalCounterStore):
    closed = False

    async def close(self):
        self.closed = True


def build_service(chat=None, tts=None, store=None, **config):
    chat = chat or ScriptedTransport(gemini_text_response("ok"))
    tts = tts or ScriptedTransport(gemini_audio_response())
    sleep = RecordingSleep()
    service = GatewayService(
        config=make_test_config(**config),
        counter_store=store or LocalCounterStore(clock=FixedClock()),
        chat_client=GeminiChatClient("test-key", "gemini-test", transport=chat),
        speech_client=GeminiSpeechClient("test-key", "gemini-tts-test", transport=tts),
        sleep=sleep,
    )
    service.test_sleep = sleep
    return service


class TestGatewayService:
    """Test cases for GatewayService."""

    @pytest.fixture
    def chat_transport(self):
        return ScriptedTransport(gemini_text_response("నమస్కారం"))

    @pytest.fixture
    def service(self, chat_transport):
        return build_service(chat=chat_transport)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "gateway"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["counter_store"] == "memory:ok"

    def test_health_reports_disabled_store(self):
        client = TestClient(build_service(store=DisabledCounterStore()).app)
        assert client.get("/health").json()["dependencies"]["counter_store"] == "disabled:degraded"

    def test_metrics_endpoint(self, client):
        client.post("/api/chat", json={"message": "hi"})
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "rate_limit_decisions_total" in response.text
        assert "upstream_attempts_total" in response.text

    def test_chat_success(self, client, chat_transport):
        response = client.post("/api/chat", json={
            "message": "Who wrote Psalms?",
            "conversationHistory": [{"role": "user", "content": "Hello"}],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "నమస్కారం"
        assert data["timestamp"].endswith("Z")
        assert chat_transport.calls == 1
        assert len(chat_transport.body()["contents"]) == 2

    def test_cors_headers_on_every_response(self, client):
        for response in (client.post("/api/chat", json={"message": "hi"}), client.post("/api/chat", json={})):
            assert response.headers["Access-Control-Allow-Origin"] == "*"
            assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
            assert response.headers["Access-Control-Allow-Headers"] == "Content-Type, X-App-Secret"

    def test_options_preflight(self, client, chat_transport):
        response = client.options("/api/chat")
        assert response.status_code == 200
        assert response.json() == {}
        assert chat_transport.calls == 0

    @pytest.mark.parametrize("path", ["/api/chat", "/api/tts"])
    def test_method_not_allowed(self, client, path):
        response = client.get(path)
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": 5}, ["hi"]])
    def test_chat_invalid_input(self, client, chat_transport, body):
        response = client.post("/api/chat", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"
        assert chat_transport.calls == 0

    def test_chat_malformed_json(self, client):
        response = client.post("/api/chat", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_chat_rate_limited(self):
        service = build_service(chat_user_daily_limit=2)
        client = TestClient(service.app)

        assert client.post("/api/chat", json={"message": "1"}).status_code == 200
        assert client.post("/api/chat", json={"message": "2"}).status_code == 200
        response = client.post("/api/chat", json={"message": "3"})

        assert response.status_code == 429
        data = response.json()
        assert data["code"] == "RATE_LIMITED"
        assert data["reason"] == "user_limit"
        assert "2 questions" in data["error"]
        assert isinstance(data["resetTime"], int)
        assert "Retry-After" in response.headers

    def test_rate_limit_keyed_by_forwarded_for(self):
        client = TestClient(build_service(chat_user_daily_limit=1).app)

        first = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        second = {"X-Forwarded-For": "198.51.100.2"}
        assert client.post("/api/chat", json={"message": "a"}, headers=first).status_code == 200
        assert client.post("/api/chat", json={"message": "a"}, headers=second).status_code == 200
        assert client.post("/api/chat", json={"message": "a"}, headers=first).status_code == 429

    def test_global_daily_limit_reported_before_user_limit(self):
        client = TestClient(build_service(chat_global_daily_limit=1, chat_user_daily_limit=1).app)
        client.post("/api/chat", json={"message": "a"})
        response = client.post("/api/chat", json={"message": "a"})
        assert response.json()["reason"] == "daily_limit"

    def test_degraded_store_admits(self):
        transport = ScriptedTransport(gemini_text_response("still here"))
        client = TestClient(build_service(chat=transport, store=DisabledCounterStore()).app)

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 200
        assert response.json()["response"] == "still here"

    def test_malformed_redis_url_admits(self):
        transport = ScriptedTransport(gemini_text_response("admitted"))
        client = TestClient(build_service(chat=transport, store=RedisCounterStore("localhost:6379")).app)

        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 200
        assert response.json()["response"] == "admitted"

    def test_unhandled_exception_is_internal_error_with_cors(self, service, client):
        async def crash(caller, body):
            raise RuntimeError("handler crashed")

        service.chat_handler.handle = crash
        response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"

    def test_upstream_internal_failure_hides_details_in_production(self):
        service = build_service(env="production")

        async def broken_send(payload):
            raise KeyError("candidates")

        service.chat_client.send = broken_send
        response = TestClient(service.app).post("/api/chat", json={"message": "hi"})

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "details" not in data
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_upstream_internal_failure_shows_kind_outside_production(self, service, client):
        async def broken_send(payload):
            raise KeyError("candidates")

        service.chat_client.send = broken_send
        data = client.post("/api/chat", json={"message": "hi"}).json()

        assert data["details"]["kind"] == "internal"

    def test_request_id_echoed(self, client):
        response = client.post("/api/chat", json={"message": "hi"}, headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
        assert client.get("/").headers["X-Request-ID"]

    def test_shutdown_closes_counter_store(self):
        store = ClosingStore(clock=FixedClock())
        with TestClient(build_service(store=store).app) as client:
            assert client.post("/api/chat", json={"message": "hi"}).status_code == 200
            assert not store.closed
        assert store.closed

    def test_upstream_overload_retried_then_unavailable(self):
        transport = ScriptedTransport(overloaded())
        service = build_service(chat=transport)
        response = TestClient(service.app).post("/api/chat", json={"message": "hi"})

        assert response.status_code == 503
        assert response.json()["code"] == "UPSTREAM_UNAVAILABLE"
        assert transport.calls == 3
        assert service.test_sleep.delays == [1.0, 2.0]

    def test_upstream_quota_not_retried(self):
        transport = ScriptedTransport(quota_exceeded(), gemini_text_response("never"))
        response = TestClient(build_service(chat=transport).app).post("/api/chat", json={"message": "hi"})

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "UPSTREAM_QUOTA_EXHAUSTED"
        assert data["error"] == "Service temporarily unavailable. Please try again later."
        assert transport.calls == 1

    def test_upstream_empty_response_is_bad_gateway(self):
        transport = ScriptedTransport({"candidates": []})
        response = TestClient(build_service(chat=transport).app).post("/api/chat", json={"message": "hi"})
        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_PROTOCOL_ERROR"

    def test_upstream_rejection_is_bad_gateway(self):
        transport = ScriptedTransport(gemini_error(400, "INVALID_ARGUMENT", "bad request"))
        response = TestClient(build_service(chat=transport).app).post("/api/chat", json={"message": "hi"})
        assert response.status_code == 502
        assert transport.calls == 1

    def test_error_details_hidden_in_production(self):
        transport = ScriptedTransport(gemini_error(400, "INVALID_ARGUMENT", "bad request"))
        client = TestClient(build_service(chat=transport, env="production").app)

        data = client.post("/api/chat", json={"message": "hi"}).json()

        assert "details" not in data

    def test_error_details_shown_outside_production(self):
        transport = ScriptedTransport(gemini_error(400, "INVALID_ARGUMENT", "bad request"))
        client = TestClient(build_service(chat=transport).app)

        data = client.post("/api/chat", json={"message": "hi"}).json()

        assert data["details"]["kind"] == "rejected"

    def test_app_secret_enforced_when_configured(self):
        transport = ScriptedTransport(gemini_text_response("ok"))
        client = TestClient(build_service(chat=transport, app_secret="s3cret").app)

        denied = client.post("/api/chat", json={"message": "hi"})
        allowed = client.post("/api/chat", json={"message": "hi"}, headers={"X-App-Secret": "s3cret"})

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert transport.calls == 1

    def test_tts_success(self, client):
        response = client.post("/api/tts", json={"text": "  In the beginning  "})
        assert response.status_code == 200
        assert response.json() == {"audioData": "UklGRiQAAABXQVZF", "mimeType": "audio/pcm;rate=24000"}

    def test_tts_trims_text(self):
        tts = ScriptedTransport(gemini_audio_response())
        TestClient(build_service(tts=tts).app).post("/api/tts", json={"text": "  hi  "})
        assert tts.body()["contents"][0]["parts"][0]["text"] == "hi"

    @pytest.mark.parametrize("body", [{}, {"text": ""}, {"text": "   "}, {"text": 3}])
    def test_tts_invalid_input(self, client, body):
        response = client.post("/api/tts", json=body)
        assert response.status_code == 400

    def test_tts_rate_limited_separately_from_chat(self):
        client = TestClient(build_service(tts_user_daily_limit=1, chat_user_daily_limit=1).app)

        assert client.post("/api/chat", json={"message": "hi"}).status_code == 200
        assert client.post("/api/tts", json={"text": "hi"}).status_code == 200
        response = client.post("/api/tts", json={"text": "hi"})

        assert response.status_code == 429
        assert response.json()["error"] == "Daily TTS limit reached. Please try again tomorrow."

    def test_tts_missing_audio_is_bad_gateway(self):
        tts = ScriptedTransport(gemini_text_response("no audio"))
        response = TestClient(build_service(tts=tts).app).post("/api/tts", json={"text": "hi"})
        assert response.status_code == 502


def test_create_app(monkeypatch):
    monkeypatch.setenv("GATEWAY_COUNTER_STORE_BACKEND", "memory")
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")
    app = create_app()
    service = app.state.gateway_service
    assert service.config.gemini_api_key == "from-env"
    assert service.counter_store.name == "memory"
