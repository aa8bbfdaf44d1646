"""
Edge Proxy - Health Check Route
=================================

What:  Synthetic health endpoint answered by the proxy itself.
How:   Returns status, current UTC timestamp and environment name. No origin
       call, no store access, so it answers while the origin is down.
Who:   Load balancers, uptime monitors, deploy checks.

Any method is accepted (OPTIONS is answered earlier by the CORS middleware),
so the route is a plain Starlette route without a method list.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from edge_proxy.context import get_context
from edge_proxy.schemas.responses import HealthResponse

router = APIRouter(tags=["Health"])


def utc_timestamp() -> str:
    """ISO 8601 in UTC with millisecond precision, e.g. 2024-01-15T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def health_check(request: Request) -> JSONResponse:
    body = HealthResponse(
        status="ok",
        timestamp=utc_timestamp(),
        environment=get_context(request).environment,
    )
    return JSONResponse(body.model_dump())


router.add_route("/health", health_check, include_in_schema=False)
