"""In-memory cache for successfully fetched live series."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Hashable, Optional

from .models import IndicatorSeries

__all__ = ["SeriesCache"]


@dataclass(frozen=True)
class _Entry:
    series: IndicatorSeries
    stored_at: float


class SeriesCache:
    """Keep live series for ``ttl_seconds``; a TTL of zero disables caching."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, _Entry] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: Hashable) -> Optional[IndicatorSeries]:
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.series

    def put(self, key: Hashable, series: IndicatorSeries) -> None:
        if not self.enabled:
            return
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if now - entry.stored_at >= self.ttl_seconds]
        for stale_key in expired:
            del self._entries[stale_key]
        self._entries[key] = _Entry(series=series, stored_at=now)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
