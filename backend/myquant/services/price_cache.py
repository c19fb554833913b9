# backend/myquant/services/price_cache.py
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple

from myquant.schemas.market import PriceSnapshot


class PriceCache:
    """In-process TTL cache of price snapshots keyed by ticker.

    One instance is built at startup and handed to the QuoteFetcher; tests
    build their own with a fake clock.
    """

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.time):
        self.ttl = ttl_seconds
        self._clock = clock
        self._store: Dict[str, Tuple[float, PriceSnapshot]] = {}

    def get(self, ticker: str) -> Optional[PriceSnapshot]:
        hit = self._store.get(ticker.upper())
        if not hit:
            return None
        ts, snap = hit
        if self._clock() - ts > self.ttl:
            self._store.pop(ticker.upper(), None)
            return None
        return snap

    def put(self, ticker: str, snap: PriceSnapshot) -> None:
        self._store[ticker.upper()] = (self._clock(), snap)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
