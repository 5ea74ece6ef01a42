from typing import Protocol

import httpx
import structlog

from .config import settings
from .errors import UpstreamGenerationError

log = structlog.get_logger("bizops.generation")


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str: ...


class GenerationClient:
    """Gemini `generateContent` over HTTP; the prompt travels in the JSON body."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.GENERATION_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.GENERATION_API_KEY
        self.model = model or settings.GENERATION_MODEL
        self.timeout = float(timeout or settings.GENERATION_TIMEOUT_SECONDS)
        self._transport = transport

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamGenerationError("Generation service is not configured")

        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(
                    f"/models/{self.model}:generateContent",
                    json=body,
                    headers={"x-goog-api-key": self.api_key},
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as exc:
            log.error("generation_request_failed", error=str(exc), model=self.model)
            raise UpstreamGenerationError(str(exc)) from exc
        except ValueError as exc:
            log.error("generation_bad_payload", error=str(exc), model=self.model)
            raise UpstreamGenerationError("Generation service returned invalid JSON") from exc

        return extract_text(payload)


def extract_text(payload: dict) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise UpstreamGenerationError("Generation service returned no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(str(p.get("text") or "") for p in parts)
    if not text.strip():
        raise UpstreamGenerationError("Generation service returned an empty answer")
    return text


def get_generator() -> TextGenerator:
    return GenerationClient()
