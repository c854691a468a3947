"""
Gemini REST clients for the gateway.

Each client performs exactly one HTTP call per ``send``. Non-2xx answers are
raised as ``UpstreamError`` carrying the provider's status code, status name
and message; 2xx answers without usable content raise
``UpstreamResponseError``. Retrying is the resilient caller's job.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from shared.logging import get_logger

DEFAULT_SYSTEM_PROMPT = """You are a helpful Bible study assistant for Telugu-speaking users.

CRITICAL RULES:
1. ALWAYS respond in Telugu (తెలుగు)
2. Be warm, patient, and encouraging
3. Provide clear, accurate answers about Bible content
4. When the user provides their current Bible location, use that context to give relevant answers
5. Keep responses concise but thorough
6. Use simple, everyday Telugu that elderly users can understand

LANGUAGE EXAMPLES:
- "నేను మీకు సహాయం చేస్తాను" (I will help you)
- "బైబిల్ ప్రకారం..." (According to the Bible...)
- "ఈ అధ్యాయం గురించి..." (About this chapter...)

Remember: Always respond in Telugu, even if the user writes in English."""

CHAT_GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}


class UpstreamError(Exception):
    """The upstream answered with an error status."""

    def __init__(self, status_code: int, message: str, status: Optional[str] = None):
        self.status_code = status_code
        self.status = status
        self.message = message
        super().__init__(f"Gemini error {status_code}: {message}")


class UpstreamResponseError(Exception):
    """The upstream answered 2xx but the body is unusable."""


@dataclass(frozen=True)
class SpeechAudio:
    data: str  # base64
    mime_type: str


def _error_from_response(response: httpx.Response) -> UpstreamError:
    try:
        body = response.json()
    except ValueError:
        body = None

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return UpstreamError(response.status_code, response.text)
    return UpstreamError(response.status_code, error.get("message", response.text), error.get("status"))


def _first_parts(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        candidates = data.get("candidates") or []
        return candidates[0]["content"]["parts"] or []
    except (AttributeError, IndexError, KeyError, TypeError):
        return []


class GeminiClient:
    """Shared HTTP plumbing for the Gemini generateContent endpoint."""

    def __init__(self, api_key: str, model: str,
                 base_url: str = "https://generativelanguage.googleapis.com/v1beta",
                 timeout: float = 60.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.model = model if model.startswith("models/") else f"models/{model}"
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("gateway.gemini_client")

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.model}:generateContent"

    async def _generate(self, body: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                self.url,
                json=body,
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
            )

        if response.status_code != 200:
            error = _error_from_response(response)
            self.logger.warning(
                "Gemini error response",
                status_code=error.status_code,
                status=error.status,
                message=error.message,
            )
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamResponseError("Gemini returned a non-JSON body") from e


class GeminiChatClient(GeminiClient):
    """Text chat against a Gemini model."""

    def __init__(self, api_key: str, model: str, system_prompt: str = DEFAULT_SYSTEM_PROMPT, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.system_prompt = system_prompt

    def build_payload(self, message: str, history: Sequence[Dict[str, str]] = ()) -> Dict[str, Any]:
        contents = [
            {"role": turn["role"], "parts": [{"text": turn["content"]}]}
            for turn in history
        ]
        contents.append({"role": "user", "parts": [{"text": message}]})
        return {
            "systemInstruction": {"parts": [{"text": self.system_prompt}]},
            "contents": contents,
            "generationConfig": dict(CHAT_GENERATION_CONFIG),
        }

    async def send(self, payload: Dict[str, Any]) -> str:
        data = await self._generate(payload)
        text = "".join(part.get("text", "") for part in _first_parts(data) if isinstance(part, dict))
        if not text:
            raise UpstreamResponseError("No text returned from Gemini")
        return text


class GeminiSpeechClient(GeminiClient):
    """Speech synthesis against a Gemini TTS model."""

    def __init__(self, api_key: str, model: str, voice: str = "Kore", **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.voice = voice

    def build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}},
                },
            },
        }

    async def send(self, payload: Dict[str, Any]) -> SpeechAudio:
        data = await self._generate(payload)
        for part in _first_parts(data):
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if inline and inline.get("data"):
                return SpeechAudio(
                    data=inline["data"],
                    mime_type=inline.get("mimeType", "audio/pcm;rate=24000"),
                )
        raise UpstreamResponseError("No audio data returned from Gemini TTS")
