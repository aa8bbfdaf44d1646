"""
Edge Proxy - Request Context
==============================

What:  The immutable bundle of collaborators every request handler needs.
How:   Built once by the app factory (build_context) and stored on
       `app.state.context`; routes receive it through the `get_context`
       dependency, middleware through `request.app.state.context`.
Who:   RateLimitMiddleware, the health route, ProxyService.

Fields are set at construction and never reassigned; the store, HTTP client
and task set are shared objects with their own internal state.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from starlette.requests import Request

from edge_proxy.config import Settings
from edge_proxy.services.background import BackgroundTaskSet
from edge_proxy.services.kv_store import KeyValueStore, create_store
from edge_proxy.services.rate_limiter import RateLimiter
from edge_proxy.services.response_cache import ResponseCache


@dataclass(frozen=True)
class ProxyContext:
    origin_url: str
    environment: str
    served_by: str
    store: KeyValueStore
    http_client: httpx.AsyncClient
    rate_limiter: RateLimiter
    cache: ResponseCache
    tasks: BackgroundTaskSet

    async def aclose(self) -> None:
        """Finish pending background writes, then release connections."""
        await self.tasks.drain()
        await self.http_client.aclose()
        await self.store.close()


def build_context(
    settings: Settings,
    store: Optional[KeyValueStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProxyContext:
    """
    Assemble a ProxyContext from settings.

    `store` and `http_client` override the configured ones; tests pass a
    MemoryStore and a client on httpx.MockTransport.
    """
    if store is None:
        store = create_store(settings.cache_store_url)
    if http_client is None:
        # The proxy relays redirects untouched; the client must not follow them
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.origin_timeout_or_none),
            follow_redirects=False,
        )
    return ProxyContext(
        origin_url=settings.api_url.rstrip("/"),
        environment=settings.environment,
        served_by=settings.served_by,
        store=store,
        http_client=http_client,
        rate_limiter=RateLimiter(
            store,
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
            client_ip_header=settings.client_ip_header,
        ),
        cache=ResponseCache(store),
        tasks=BackgroundTaskSet(),
    )


def get_context(request: Request) -> ProxyContext:
    """FastAPI dependency returning the app's ProxyContext."""
    return request.app.state.context
