"""
Edge Proxy - Response Cache
=============================

What:  Read-through cache of origin JSON bodies for GET requests.
How:   Bodies are stored as text under "cache:<path><query>" with a TTL chosen
       by path rules. Lookups return the stored text or None.
Who:   ProxyService, before (lookup) and after (store) the origin fetch.

TTL rules (first match wins, substring match on the path):
    /auth/             0      never cached
    /security/         3600
    /sessions          60
    /memories/search   30
    anything else      10

Staleness:
    A hit is served without contacting the origin, so a body can be up to one
    TTL old. Keys are exact strings: "?a=1&b=2" and "?b=2&a=1" are distinct.
"""

import logging
from typing import Optional, Sequence, Tuple

from edge_proxy.exceptions import StoreError
from edge_proxy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "cache:"
DEFAULT_TTL = 10

TTL_RULES: Sequence[Tuple[str, int]] = (
    ("/auth/", 0),
    ("/security/", 3600),
    ("/sessions", 60),
    ("/memories/search", 30),
)


def cache_key(path: str, query: str = "") -> str:
    return f"{KEY_PREFIX}{path}?{query}" if query else f"{KEY_PREFIX}{path}"


def cache_ttl(path: str) -> int:
    for fragment, ttl in TTL_RULES:
        if fragment in path:
            return ttl
    return DEFAULT_TTL


def is_cacheable(status_code: int, content_type: Optional[str]) -> bool:
    """2xx responses whose Content-Type names JSON."""
    return 200 <= status_code < 300 and "application/json" in (content_type or "")


class ResponseCache:
    def __init__(self, store: KeyValueStore):
        self.kv = store

    async def lookup(self, key: str) -> Optional[str]:
        """Stored body for `key`, or None on a miss or store failure."""
        try:
            body = await self.kv.get(key)
        except StoreError as e:
            logger.warning("Cache lookup failed for %s: %s", key, e.context)
            return None
        # An empty body is indistinguishable from a miss
        return body or None

    async def store(self, key: str, body: str, ttl: int) -> None:
        """
        Write `body` under `key` for `ttl` seconds. A ttl of 0 is a no-op.

        Raises:
            StoreError: Propagated so the background task set records it.
        """
        if ttl <= 0:
            return
        await self.kv.put(key, body, expire_after_seconds=ttl)
        logger.debug("Cached %s for %ds (%d chars)", key, ttl, len(body))
