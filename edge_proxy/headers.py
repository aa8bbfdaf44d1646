"""
Edge Proxy - Response Header Sets
===================================

What:  The fixed CORS and security header sets stamped onto responses.
Who:   CORSMiddleware (every response), ProxyService (proxied and cached
       responses).

Overlay rule:
    These values overwrite whatever the origin sent for the same keys.
    `apply_headers` uses item assignment on Starlette's MutableHeaders,
    which replaces every existing value of the key.
"""

from typing import Mapping

from starlette.datastructures import MutableHeaders

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Request-ID",
    "Access-Control-Max-Age": "86400",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "accelerometer=(), camera=(), geolocation=(), microphone=()",
}

# Connection-scoped headers (RFC 7230 §6.1); never relayed in either direction
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)


def apply_headers(headers: MutableHeaders, *header_sets: Mapping[str, str]) -> None:
    """Overlay one or more header sets, replacing existing values."""
    for header_set in header_sets:
        for name, value in header_set.items():
            headers[name] = value
