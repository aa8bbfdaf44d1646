"""
Edge Proxy - API Proxy Route
==============================

What:  Catch-all route relaying everything under /api/ to the origin.
How:   Thin handler: hands the request and context to ProxyService.
Who:   Every /api/ request that passed CORS and rate limiting.

Registered as a plain Starlette route with no method list, so any method
(PROPFIND, REPORT, ...) reaches the origin unchanged.

Errors:
    OriginUnavailableError propagates to the handler in main.py (503).
"""

from fastapi import APIRouter, Request
from fastapi.responses import Response

from edge_proxy.context import get_context
from edge_proxy.services.proxy_service import proxy_service

router = APIRouter(tags=["Proxy"])


async def proxy_api(request: Request) -> Response:
    # The service reads the raw path itself; the decoded {path} is unused
    return await proxy_service.handle(request, get_context(request))


router.add_route("/api/{path:path}", proxy_api, include_in_schema=False)
