"""Short-lived response cache shared by the source clients."""

import hashlib
import logging
import threading
import time
from typing import Any, Callable, NamedTuple

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

CACHE_TTL = 300.0  # 5 minutes
SWEEP_INTERVAL = CACHE_TTL * 2
CACHE_MAXSIZE = 256


class TimedEntry(NamedTuple):
    value: Any
    expires_at: float


def _entry_expiry(_key: str, entry: TimedEntry, _now: float) -> float:
    return entry.expires_at


def cache_key(endpoint: str, *params: Any) -> str:
    """Derive a stable key from an endpoint name and its parameters.

    Callers pass the service name plus connection identity (URL or client id)
    as ``endpoint`` and the window boundaries as ISO dates, if any.
    """
    raw = f"{endpoint}:{list(params)}"
    return hashlib.sha256(raw.encode()).digest()[:16].hex()


class ResponseCache:
    """Thread-safe TTL cache of decoded API responses.

    Entries expire on read once their TTL passes; ``sweep`` purges the ones
    nobody asked for again.
    """

    def __init__(
        self,
        ttl: float = CACHE_TTL,
        maxsize: int = CACHE_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._timer = timer
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize, ttu=_entry_expiry, timer=timer
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, bool]:
        with self._lock:
            entry = self._cache.get(key)
        if entry is None:
            return None, False
        return entry.value, True

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._timer() + (self.ttl if ttl is None else ttl)
        with self._lock:
            self._cache[key] = TimedEntry(value, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def sweep(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            expired = self._cache.expire()
        if expired:
            logger.debug("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
