# backend/myquant/core/retry.py
"""Exponential backoff for outbound HTTP calls."""

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional

import httpx

from myquant.logger import get_logger

log = get_logger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _retry_after(resp: httpx.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class RetryPolicy:
    """Retry an async request on rate limits, 5xx and transport errors.

    ``max_retries`` counts retries after the first attempt, so the request is
    issued at most ``max_retries + 1`` times. The delay before retry ``n``
    (0-based) is ``base_delay * 2**n`` capped at ``max_delay``; a numeric
    ``Retry-After`` header overrides it.

    Once the ceiling is reached the last response is returned as-is (the caller
    decides what a 429 means to it) or the last transport error is re-raised.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    def delay_for(self, attempt: int, resp: Optional[httpx.Response] = None) -> float:
        if resp is not None:
            hinted = _retry_after(resp)
            if hinted is not None:
                return min(hinted, self.max_delay)
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def call(
        self,
        request: Callable[[], Awaitable[httpx.Response]],
        label: str = "request",
    ) -> httpx.Response:
        for attempt in range(self.max_retries + 1):
            try:
                resp = await request()
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise
                delay = self.delay_for(attempt)
                log.warning(f"{label} failed ({e.__class__.__name__}), "
                            f"retry {attempt + 1}/{self.max_retries} in {delay:.1f}s")
                await self._sleep(delay)
                continue

            if resp.status_code not in RETRYABLE_STATUS or attempt >= self.max_retries:
                return resp

            delay = self.delay_for(attempt, resp)
            log.warning(f"{label} returned {resp.status_code}, "
                        f"retry {attempt + 1}/{self.max_retries} in {delay:.1f}s")
            await self._sleep(delay)

        raise RuntimeError("unreachable")  # pragma: no cover
