"""
Edge Proxy - Per-Client Rate Limiter
======================================

What:  Fixed-window request counter per client, kept in the shared store.
How:   Read the client's counter; deny at the limit, otherwise write back
       count + 1 with the window as expiry.
Who:   Called by RateLimitMiddleware for every non-preflight request.

Algorithm: store-backed counter
    1. client id = trusted connecting-IP header, else "anonymous"
    2. count = GET ratelimit:<client id>
    3. count >= limit        → deny, retry after one window
    4. otherwise             → PUT count + 1 (or 1), expiring in one window

    The expiry is reset by every write, so a client that keeps sending
    requests keeps its counter alive until it stops for a full window.

Known approximation:
    Steps 2 and 4 are not atomic. Two concurrent requests from the same
    client can read the same count and both write count + 1, so the counter
    may undercount under concurrency. Accepted; the limit is advisory.

Known limitation:
    Every request without the connecting-IP header lands in the single
    "anonymous" bucket, so such clients throttle each other.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from edge_proxy.exceptions import StoreError
from edge_proxy.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

FALLBACK_CLIENT_ID = "anonymous"
KEY_PREFIX = "ratelimit:"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after: int = 0


class RateLimiter:
    """
    Store-backed per-client request limiter.

    Args:
        store: Shared key-value store holding the counters
        limit: Requests allowed per window (default 100)
        window: Window length in seconds (default 60)
        client_ip_header: Trusted header naming the connecting client
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = 100,
        window: int = 60,
        client_ip_header: str = "CF-Connecting-IP",
    ):
        self.store = store
        self.limit = limit
        self.window = window
        self.client_ip_header = client_ip_header

    def client_id(self, headers: Mapping[str, str]) -> str:
        return headers.get(self.client_ip_header) or FALLBACK_CLIENT_ID

    async def check(self, headers: Mapping[str, str]) -> RateLimitResult:
        """
        Count one request for the client named by `headers`.

        Store failures never deny a request: an unreadable counter counts as
        a fresh window and a failed write is logged and ignored.
        """
        client_id = self.client_id(headers)
        key = f"{KEY_PREFIX}{client_id}"

        try:
            raw = await self.store.get(key)
        except StoreError as e:
            logger.warning("Rate limit lookup failed for %s: %s", client_id, e.context)
            raw = None

        count = _parse_count(raw)
        if count is not None and count >= self.limit:
            logger.warning(
                "Rate limit exceeded for client %s: %d requests in %ds window",
                client_id,
                count,
                self.window,
            )
            return RateLimitResult(allowed=False, retry_after=self.window)

        new_count = count + 1 if count is not None else 1
        try:
            await self.store.put(key, str(new_count), expire_after_seconds=self.window)
        except StoreError as e:
            logger.warning("Rate limit update failed for %s: %s", client_id, e.context)

        return RateLimitResult(allowed=True, retry_after=0)


def _parse_count(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.debug("Ignoring unparsable rate limit counter %r", raw)
        return None
