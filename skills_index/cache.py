"""TTL caches for remote lookups.

Expiry is checked lazily on read; there is no background sweep. A TTL of zero
or less means entries never expire. The TTL may be a number or a zero-argument
callable evaluated on every ``get`` so a settings change applies immediately.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar, Union

T = TypeVar("T")

TTL = Union[float, Callable[[], float]]


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float


def _resolve_ttl(ttl: TTL) -> float:
    return ttl() if callable(ttl) else ttl


class TTLCache(Generic[T]):
    """Keyed cache with a fixed or dynamically computed TTL (seconds)."""

    def __init__(self, ttl: TTL, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        ttl = _resolve_ttl(self._ttl)
        if ttl > 0 and self._clock() - entry.timestamp >= ttl:
            del self._entries[key]
            return None
        return entry.data

    def set(self, key: Hashable, data: T) -> None:
        self._entries[key] = CacheEntry(data=data, timestamp=self._clock())

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class SingleCache(Generic[T]):
    """Holds only the last stored value."""

    def __init__(self, ttl: TTL = 0, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._entry: Optional[CacheEntry[T]] = None

    def get(self) -> Optional[T]:
        if self._entry is None:
            return None
        ttl = _resolve_ttl(self._ttl)
        if ttl > 0 and self._clock() - self._entry.timestamp >= ttl:
            self._entry = None
            return None
        return self._entry.data

    def set(self, data: T) -> None:
        self._entry = CacheEntry(data=data, timestamp=self._clock())

    def clear(self) -> None:
        self._entry = None
