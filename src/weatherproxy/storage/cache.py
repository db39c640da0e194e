from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from ..domain.models import WeatherObservation


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: WeatherObservation
    written_at: float
    ttl_seconds: float

    def age(self, now: float) -> float:
        return now - self.written_at

    def is_stale(self, now: float) -> bool:
        return self.age(now) > self.ttl_seconds


def normalize_city_key(city: str) -> str:
    return city.strip().lower()


class ResultCache:
    """In-memory store of the last successful observation per city.

    Entries are fresh for `ttl_seconds`. Fallback reads (`allow_stale=True`) may
    additionally use an entry for up to `stale_grace_seconds` past its TTL; past
    that window the entry is evicted on read or by `prune_expired_entries`.
    """

    def __init__(
        self,
        ttl_seconds: float = 3,
        *,
        stale_grace_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        if stale_grace_seconds < 0:
            raise ValueError("stale_grace_seconds must be >= 0")
        self.ttl_seconds = ttl_seconds
        self.stale_grace_seconds = stale_grace_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def put(self, city: str, value: WeatherObservation) -> CacheEntry:
        entry = CacheEntry(
            key=normalize_city_key(city),
            value=value,
            written_at=self._clock(),
            ttl_seconds=self.ttl_seconds,
        )
        with self._lock:
            self._entries[entry.key] = entry
        return entry

    def get_entry(self, city: str) -> CacheEntry | None:
        key = normalize_city_key(city)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                return None
            return entry

    def get(self, city: str, *, allow_stale: bool = False) -> WeatherObservation | None:
        entry = self.get_entry(city)
        if entry is None:
            return None
        if not allow_stale and entry.is_stale(self._clock()):
            return None
        return entry.value

    def prune_expired_entries(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return entry.age(now) > entry.ttl_seconds + self.stale_grace_seconds
