"""
Edge Proxy - Rate Limiting Middleware
=======================================

What:  Rejects clients that exceeded their per-window request budget.
How:   Delegates counting to the context's RateLimiter (store-backed), and
       answers 429 with Retry-After when it denies.
Who:   Applied to every non-preflight request, including /health and paths
       that end up as 404.

Response on rate limit:
    HTTP 429 Too Many Requests
    Retry-After: window length in seconds (default 60)
    Body: {"error": "rate_limit_exceeded", "message": ..., "details": {"retry_after": 60}, "request_id": ...}
    CORS headers are added by CORSMiddleware further out.

Multi-worker behavior:
    With CACHE_STORE_URL=redis://... every worker shares the counters. With
    memory:// each worker counts separately.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from edge_proxy.exceptions import RateLimitExceededError
from edge_proxy.middleware.request_id import request_id_var
from edge_proxy.schemas.responses import ErrorResponse


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rate_limiter = request.app.state.context.rate_limiter
        result = await rate_limiter.check(request.headers)

        if not result.allowed:
            exc = RateLimitExceededError(retry_after=result.retry_after)
            body = ErrorResponse(
                error="rate_limit_exceeded",
                message=exc.message,
                details=exc.context,
                request_id=request_id_var.get("") or None,
            )
            return JSONResponse(
                status_code=429,
                content=body.model_dump(exclude_none=True),
                headers={"Retry-After": str(exc.retry_after)},
            )

        return await call_next(request)
