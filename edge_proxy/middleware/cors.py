"""
Edge Proxy - CORS Middleware
==============================

What:  Answers CORS preflight requests and stamps the CORS header set on
       every other response.
How:   OPTIONS (any path) → 204, empty body, CORS headers; nothing further
       down the chain runs, so preflights are never rate limited or proxied.
       Everything else passes through and gets the CORS set overlaid.
Who:   Outermost middleware.

Differences from Starlette's CORSMiddleware:
    The allowed origin is the literal "*" and must be present on every
    response, including 404s, 429s and 503s, whether or not the request
    carried an Origin header.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from edge_proxy.headers import CORS_HEADERS, apply_headers


def preflight_response() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


class CORSHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()

        response = await call_next(request)
        apply_headers(response.headers, CORS_HEADERS)
        return response
