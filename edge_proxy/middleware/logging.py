"""
Edge Proxy - Request Logging Middleware
=========================================

What:  One access-log line per proxied request.
How:   Times the downstream call and logs method, path, status, duration,
       cache disposition, request ID and client address.
Who:   Applied to every non-preflight request, after RequestIDMiddleware.

Log line:
    GET /api/sessions 200 12.4ms cache=HIT [a1b2c3d4] from 203.0.113.7

Level by status:
    5xx → ERROR, 4xx → WARNING, otherwise INFO

What we log vs what we DON'T log:
    ✅ Log: method, path, status, duration, client IP, request ID, X-Cache
    ❌ Don't log: query strings, bodies, Authorization or cookie headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from edge_proxy.middleware.request_id import request_id_var

logger = logging.getLogger("edge_proxy.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs structured information about each HTTP request and response.

    Client address:
        The trusted connecting-IP header when present (the socket peer is
        the edge platform), otherwise the socket peer.
    """

    def __init__(self, app, client_ip_header: str = "CF-Connecting-IP"):
        super().__init__(app)
        self.client_ip_header = client_ip_header

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        path = request.url.path
        # Health probes run every few seconds; logging them buries real traffic
        if path == "/health":
            return await call_next(request)

        client_ip = request.headers.get(self.client_ip_header) or (
            request.client.host if request.client else "unknown"
        )
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        cache_status = response.headers.get("X-Cache", "-")
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms cache=%s [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            cache_status,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "cache": cache_status,
                "client_ip": client_ip,
            },
        )

        return response
