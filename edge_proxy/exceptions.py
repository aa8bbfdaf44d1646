"""
Edge Proxy - Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions for the failure kinds the proxy knows.
How:   Each exception carries a message and optional context dict.
       Global exception handlers (registered in main.py) translate the ones
       that reach the route boundary into HTTP responses.
Who:   Raised by services and middleware; caught by handlers or by the
       services that treat store problems as advisory.

Exception Hierarchy:
    EdgeProxyError (base)
    ├── RateLimitExceededError   → 429 Too Many Requests (+ Retry-After)
    ├── OriginUnavailableError   → 503 Service Unavailable (fixed JSON body)
    ├── StoreError               → never returned; logged, treated as a miss
    └── ConfigurationError       → startup failure (bad store URL)
"""

from typing import Any, Dict, Optional


class EdgeProxyError(Exception):
    """
    Base exception for all edge proxy errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class RateLimitExceededError(EdgeProxyError):
    """
    Raised when a client exceeds the per-client request limit.

    When:    The stored counter for the client already reached the limit
             inside the current window.
    HTTP:    429 Too Many Requests, Retry-After = window length in seconds.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class OriginUnavailableError(EdgeProxyError):
    """
    Raised when the origin API cannot be reached at the transport level.

    When:    Connection refused, DNS failure, timeout, broken connection.
             An origin that answers (even with 5xx) is NOT this error; its
             response is relayed as-is.
    HTTP:    503 Service Unavailable with the fixed body
             {"error": "Backend service unavailable",
              "message": "Unable to connect to API server"}
    """

    error = "Backend service unavailable"

    def __init__(
        self,
        message: str = "Unable to connect to API server",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StoreError(EdgeProxyError):
    """
    Raised by a key-value store backend when the backend itself fails.

    Callers treat it like an absent key: counters and cache entries are
    advisory, so a failing store degrades to "no limit, no cache".
    """

    def __init__(
        self,
        message: str = "Key-value store operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(EdgeProxyError):
    """Raised at startup when a setting cannot be turned into a component."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
