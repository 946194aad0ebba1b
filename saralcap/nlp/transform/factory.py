from __future__ import annotations
import os
from .base import TransformService
from .gemini import DEFAULT_BASE_URL, DEFAULT_MODEL, GeminiTransformService
from .stub import StubTransformService

def get_transform_service(
    provider: str | None = None,
    *,
    model: str = DEFAULT_MODEL,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 15.0,
) -> TransformService:
    provider = (provider or os.getenv("SARALCAP_TRANSFORM", "gemini")).lower().strip()

    if provider == "stub":
        return StubTransformService()
    if provider == "gemini":
        api_key = os.getenv("GEMINI_API_KEY", "").strip()
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not set; export it or use --transform stub")
        return GeminiTransformService(api_key, model=model, base_url=base_url, timeout=timeout)

    raise ValueError(f"Unknown transform provider: {provider}")
