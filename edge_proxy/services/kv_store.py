"""
Edge Proxy - Key-Value Store Interface
========================================

What:  Abstract base class for the transient store holding rate-limit counters
       and cached response bodies, plus the process-local implementation.
How:   Concrete stores implement get/put with per-key expiry. `create_store`
       picks the backend from the CACHE_STORE_URL scheme.
Who:   Used by RateLimiter and ResponseCache.

Contract shared by every backend:
    - Values are strings; keys are plain strings ("ratelimit:<id>",
      "cache:<path><query>").
    - put() with expire_after_seconds=N makes the key disappear N seconds
      after that write. Every write resets the expiry.
    - Backend failures raise StoreError; an expired or unknown key returns
      None. Callers treat both the same way.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from edge_proxy.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Abstract interface for an expiring string key-value store.

    Implementations:
        - MemoryStore: dict in this process (dev, tests, single worker)
        - RedisStore: shared Redis instance (multi-worker deployments)
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Return the value stored under `key`, or None if absent or expired.

        Raises:
            StoreError: The backend could not be queried.
        """
        ...

    @abstractmethod
    async def put(self, key: str, value: str, expire_after_seconds: int) -> None:
        """
        Store `value` under `key`, expiring `expire_after_seconds` from now.

        Raises:
            StoreError: The backend rejected or failed the write.
        """
        ...

    async def close(self) -> None:
        """Release backend resources. Called once at application shutdown."""
        return None


class MemoryStore(KeyValueStore):
    """
    Process-local store with lazy expiry.

    Entries are (value, expires_at) pairs keyed by string; expiry is checked
    on read and expired entries are dropped then. A periodic sweep (every
    `sweep_every` writes) removes expired keys nobody reads again.

    The clock is injectable so tests can move time forward without sleeping.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 1000,
    ):
        self._clock = clock
        self._sweep_every = sweep_every
        self._writes = 0
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, expire_after_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + expire_after_seconds)
        self._writes += 1
        if self._writes % self._sweep_every == 0:
            self._sweep()

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _sweep(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired store entries", len(expired))


def create_store(url: str) -> KeyValueStore:
    """
    Build the store named by a CACHE_STORE_URL value.

    Supported:
        memory://                     → MemoryStore
        redis://... / rediss://...    → RedisStore

    Raises:
        ConfigurationError: Unknown scheme.
    """
    scheme = url.split("://", 1)[0].lower() if "://" in url else ""
    if scheme == "memory":
        return MemoryStore()
    if scheme in ("redis", "rediss", "unix"):
        from edge_proxy.services.redis_store import RedisStore

        return RedisStore(url)
    raise ConfigurationError(
        message=f"Unsupported CACHE_STORE_URL scheme '{scheme or url}'",
        context={"url": url},
    )
