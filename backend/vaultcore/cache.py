"""
CryptoVault Core: In-Process Memo Cache

Bounded LRU cache for engine results. Keys always carry the candle count
and the latest timestamp, so a grown candle set can never hit a stale entry.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Optional, Sequence

import structlog

log = structlog.get_logger(__name__)


def make_cache_key(prefix: str, symbol: str, timeframe: str, candles: Sequence) -> tuple:
    """Build a deterministic key from a candle series.

    ``(prefix, symbol, timeframe, length, first ts, last ts)``. An empty
    series gets ``None`` for both timestamps.
    """
    if candles:
        first_ts, last_ts = candles[0].timestamp, candles[-1].timestamp
    else:
        first_ts = last_ts = None
    return (prefix, symbol, timeframe, len(candles), first_ts, last_ts)


class MemoCache:
    """Least-recently-used mapping with hit/miss counters."""

    def __init__(self, maxsize: int = 32, name: str = "memo"):
        self._data: OrderedDict[tuple, Any] = OrderedDict()
        self._maxsize = max(1, maxsize)
        self._name = name
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: tuple) -> bool:
        return key in self._data

    def get(self, key: tuple) -> Optional[Any]:
        """Get a cached value. Returns None on miss."""
        if key not in self._data:
            self._misses += 1
            return None
        self._data.move_to_end(key)
        self._hits += 1
        log.debug("cache.hit", cache=self._name, key=key)
        return self._data[key]

    def set(self, key: tuple, value: Any) -> None:
        self._data[key] = value
        self._data.move_to_end(key)
        while len(self._data) > self._maxsize:
            evicted, _ = self._data.popitem(last=False)
            log.debug("cache.evicted", cache=self._name, key=evicted)

    def clear(self) -> int:
        """Drop every entry. Returns count deleted."""
        count = len(self._data)
        self._data.clear()
        return count

    def stats(self) -> dict:
        return {
            "name": self._name,
            "size": len(self._data),
            "maxsize": self._maxsize,
            "hits": self._hits,
            "misses": self._misses,
        }
