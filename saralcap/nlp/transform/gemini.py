"""Gemini-backed simplification + translation service."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .base import TransformRejected, TransformService, TransientTransformError
from saralcap.contracts import ProcessingRequest

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash-preview-05-20"

SYSTEM_PROMPT = (
    "You are a Real-time Captioning System's core ML engine. Your job is twofold: "
    "first, simplify the provided raw speech transcript into clear, concise, short "
    "sentences, removing filler words, repetitive phrases, and keeping only the core "
    "semantic meaning. The output should be easy-to-read, short text suitable for "
    "closed captioning. Second, translate this simplified English text into the "
    "target Indian language: {target_language}. You must only return a JSON object "
    "following the provided schema."
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "simplified_english_text": {
            "type": "STRING",
            "description": "The simplified and concise English version of the raw transcript.",
        },
        "translated_text": {
            "type": "STRING",
            "description": "The translation of the simplified English text into the target Indian language.",
        },
    },
    "propertyOrdering": ["simplified_english_text", "translated_text"],
}


def build_payload(req: ProcessingRequest) -> dict[str, Any]:
    user_query = f'Raw transcript: "{req.raw_text}". Target language: {req.target_language}.'
    return {
        "contents": [{"parts": [{"text": user_query}]}],
        "systemInstruction": {
            "parts": [{"text": SYSTEM_PROMPT.format(target_language=req.target_language)}]
        },
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def extract_text(body: Any) -> Optional[str]:
    """Pull candidates[0].content.parts[0].text out of a generateContent body."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


class GeminiTransformService(TransformService):
    """Async HTTP client for the Gemini generateContent endpoint with connection pooling."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-init HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def fetch(self, req: ProcessingRequest) -> Optional[str]:
        http = await self._get_http()
        try:
            response = await http.post(
                self.url,
                params={"key": self.api_key},
                json=build_payload(req),
            )
        except httpx.TimeoutException as e:
            raise TransientTransformError(f"Gemini request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientTransformError(f"Gemini transport error: {e}") from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientTransformError(f"Gemini returned HTTP {status}")
        if status >= 400:
            raise TransformRejected(f"Gemini rejected the request (HTTP {status})", status_code=status)

        try:
            body = response.json()
        except ValueError:
            logger.warning("gemini_body_not_json", extra={"status": status})
            return None
        return extract_text(body)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
