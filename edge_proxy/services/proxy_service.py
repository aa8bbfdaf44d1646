"""
Edge Proxy - Origin Forwarder
===============================

What:  Relays /api/ requests to the origin, serving GETs from the response
       cache when possible.
How:   cache lookup (GET) → build outbound request → send → stamp headers →
       return; cacheable bodies are written back by a background task.
Who:   Called by the /api/ route with the app's ProxyContext.

Request flow:
    GET + cache hit   → 200, stored body, X-Cache: HIT (origin not contacted)
    transport failure → OriginUnavailableError (503 via exception handler)
    cacheable 2xx     → body read once; returned and stored in background
    anything else     → origin body streamed through byte-for-byte

Header handling:
    Outbound:  inbound headers minus hop-by-hop, Host and Content-Length;
               X-Request-ID set to the request's correlation ID.
    Inbound:   origin headers minus hop-by-hop, then CORS + security sets
               overlaid, then X-Cache and X-Served-By.
"""

import logging
from typing import Optional

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from edge_proxy.context import ProxyContext
from edge_proxy.exceptions import OriginUnavailableError
from edge_proxy.headers import CORS_HEADERS, HOP_BY_HOP_HEADERS, SECURITY_HEADERS, apply_headers
from edge_proxy.middleware.request_id import request_id_var
from edge_proxy.services.response_cache import cache_key, cache_ttl, is_cacheable

logger = logging.getLogger(__name__)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

# Recomputed by the HTTP client (outbound) or by Starlette (decoded bodies)
_OUTBOUND_SKIP = HOP_BY_HOP_HEADERS | {"host", "content-length"}
_DECODED_SKIP = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def request_path(request: Request) -> str:
    """
    The path exactly as the client sent it (still percent-encoded).

    Some ASGI servers include the query string in raw_path, so it is cut off.
    """
    raw_path: Optional[bytes] = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1").split("?", 1)[0]
    return request.url.path


def origin_url(base: str, path: str, query: str) -> str:
    return f"{base}{path}?{query}" if query else f"{base}{path}"


class ProxyService:
    """Forwards a request to the origin and shapes the response."""

    async def handle(self, request: Request, ctx: ProxyContext) -> Response:
        path = request_path(request)
        query = request.url.query
        key = cache_key(path, query)
        method = request.method.upper()

        if method == "GET":
            cached = await ctx.cache.lookup(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return self._cached_response(cached)

        upstream = await self._send(request, ctx, method, origin_url(ctx.origin_url, path, query))

        ttl = cache_ttl(path)
        if (
            method == "GET"
            and ttl > 0
            and is_cacheable(upstream.status_code, upstream.headers.get("content-type"))
        ):
            try:
                await upstream.aread()
            except httpx.HTTPError as e:
                logger.error("Backend response read failed for %s: %s", path, e)
                raise OriginUnavailableError(context={"path": path, "error": str(e)}) from e
            finally:
                await upstream.aclose()

            ctx.tasks.spawn(
                ctx.cache.store(key, upstream.text, ttl),
                name=f"cache-store:{key}",
            )
            response = Response(content=upstream.content, status_code=upstream.status_code)
            self._copy_origin_headers(upstream, response, skip=_DECODED_SKIP)
        else:
            response = StreamingResponse(
                upstream.aiter_raw(),
                status_code=upstream.status_code,
                background=BackgroundTask(upstream.aclose),
            )
            self._copy_origin_headers(upstream, response, skip=HOP_BY_HOP_HEADERS)

        apply_headers(response.headers, CORS_HEADERS, SECURITY_HEADERS)
        response.headers["X-Cache"] = "MISS"
        response.headers["X-Served-By"] = ctx.served_by
        return response

    async def _send(
        self, request: Request, ctx: ProxyContext, method: str, url: str
    ) -> httpx.Response:
        headers = httpx.Headers(
            [
                (name, value)
                for name, value in request.headers.items()
                if name.lower() not in _OUTBOUND_SKIP
            ]
        )
        rid = request_id_var.get("")
        if rid:
            headers["X-Request-ID"] = rid

        body = None if method in BODYLESS_METHODS else await request.body()

        outbound = ctx.http_client.build_request(method, url, headers=headers, content=body)
        try:
            return await ctx.http_client.send(outbound, stream=True)
        except httpx.HTTPError as e:
            logger.error("Backend request failed: %s %s: %r", method, url, e)
            raise OriginUnavailableError(
                context={"method": method, "url": url, "error": str(e)}
            ) from e

    @staticmethod
    def _cached_response(body: str) -> Response:
        response = Response(content=body, media_type="application/json")
        response.headers["X-Cache"] = "HIT"
        apply_headers(response.headers, CORS_HEADERS, SECURITY_HEADERS)
        return response

    @staticmethod
    def _copy_origin_headers(
        upstream: httpx.Response, response: Response, skip: frozenset
    ) -> None:
        for name, value in upstream.headers.multi_items():
            if name.lower() not in skip:
                response.headers.append(name, value)


# Module-level instance used by the /api/ route
proxy_service = ProxyService()
