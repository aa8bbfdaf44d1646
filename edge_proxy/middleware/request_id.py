"""
Edge Proxy - Request ID Middleware
====================================

What:  Assigns a correlation ID to each request and returns it in the response.
How:   Reuses the client's X-Request-ID or generates a short UUID, stores it in
       a ContextVar and on request.state, echoes it in the response header.
Who:   Applied to every non-preflight request.

The same ID is forwarded to the origin (see ProxyService), so one ID ties
together the client's report, the proxy's access log and the origin's logs:
    Client (X-Request-ID: abc) → Edge Proxy (log: [abc]) → Origin (X-Request-ID: abc)
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Client sent X-Request-ID → use it
        2. Otherwise → generate the first 8 hex chars of a UUID4
        3. Store in ContextVar (loggers, ProxyService) and request.state (handlers)
        4. Add to response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        return response
