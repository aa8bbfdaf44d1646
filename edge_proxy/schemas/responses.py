"""
Edge Proxy - Response Schemas
===============================

What:  Pydantic models for the responses the proxy produces itself.
Who:   The health route, the rate-limit middleware and the exception
       handlers in main.py. Proxied bodies are relayed untouched and have
       no schema here.
"""

from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    What:  Liveness report of the proxy process.
    Who:   Returned by /health. The origin is deliberately not probed, so
           the proxy reports healthy even while the origin is down.
    """
    status: str = Field(description='Always "ok" when the proxy can answer')
    timestamp: str = Field(description="Current UTC time, ISO 8601 with milliseconds")
    environment: str = Field(description="Deployment environment name")


class ErrorResponse(BaseModel):
    """
    What:  Error body for failures the proxy answers itself.

    Example (origin unreachable):
        {
            "error": "Backend service unavailable",
            "message": "Unable to connect to API server"
        }
    """
    error: str = Field(description="Error code or short description")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
