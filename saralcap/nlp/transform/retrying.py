from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Awaitable, Callable, Optional

from .base import (
    MalformedResponse,
    TransformExhausted,
    TransformRejected,
    TransformService,
)
from saralcap.contracts import ProcessingRequest, TransformResult

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, float, BaseException], None]  # (attempt, delay_ms, error)

_NOT_RETRIED = (MalformedResponse, TransformRejected)


def backoff_delay_ms(
    attempt: int,
    *,
    base_ms: float = 1000.0,
    jitter_ms: float = 1000.0,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before retrying after failed attempt `attempt` (0-indexed)."""
    return (2 ** attempt) * base_ms + rng() * jitter_ms


def parse_payload(text: Optional[str]) -> TransformResult:
    if not text:
        raise MalformedResponse("API response was empty or malformed.")
    try:
        payload = json.loads(text)
    except ValueError as e:
        raise MalformedResponse(f"API response was not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedResponse("API response JSON was not an object.")
    return TransformResult.from_payload(payload)


class RetryingTransformClient:
    """
    Wraps one TransformService call with bounded exponential backoff.

    Attempt i (from 0) that fails transiently is followed by a wait of
    2**i * base_delay_ms + uniform(0, jitter_ms) before attempt i + 1, up to
    max_retries attempts in total. Malformed or rejected responses are raised
    straight away.
    """

    def __init__(
        self,
        service: TransformService,
        *,
        max_retries: int = 3,
        base_delay_ms: float = 1000.0,
        jitter_ms: float = 1000.0,
        on_retry: Optional[RetryCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        if max_retries <= 0:
            raise ValueError("max_retries must be > 0")
        if base_delay_ms < 0 or jitter_ms < 0:
            raise ValueError("retry delays must be >= 0")
        self.service = service
        self.max_retries = int(max_retries)
        self.base_delay_ms = float(base_delay_ms)
        self.jitter_ms = float(jitter_ms)
        self.on_retry = on_retry
        self._sleep = sleep
        self._rng = rng

    async def invoke(self, req: ProcessingRequest) -> TransformResult:
        attempt = 0
        while True:
            try:
                text = await self.service.fetch(req)
            except _NOT_RETRIED:
                raise
            except Exception as e:
                if attempt + 1 >= self.max_retries:
                    logger.error(
                        "transform_exhausted",
                        extra={"attempts": self.max_retries, "error": str(e)},
                    )
                    raise TransformExhausted(e, attempts=self.max_retries) from e
                delay_ms = backoff_delay_ms(
                    attempt,
                    base_ms=self.base_delay_ms,
                    jitter_ms=self.jitter_ms,
                    rng=self._rng,
                )
                logger.warning(
                    "transform_retry",
                    extra={
                        "attempt": attempt,
                        "delay_ms": round(delay_ms, 1),
                        "error": str(e),
                        "provider": self.service.name,
                    },
                )
                if self.on_retry is not None:
                    self.on_retry(attempt, delay_ms, e)
                await self._sleep(delay_ms / 1000.0)
                attempt += 1
                continue
            return parse_payload(text)
