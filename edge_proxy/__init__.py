"""
Edge Proxy - Application Package
==================================

What:  Reverse proxy in front of an origin API: routing, response caching,
       per-client rate limiting, CORS and security headers.

Architecture Note:

    ┌─────────────────────────────────────┐
    │      Middleware (CORS, limits)      │  ← every request
    ├─────────────────────────────────────┤
    │        Routes (/health, /api/)      │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (forwarder, cache, ...)  │  ← proxy logic
    ├─────────────────────────────────────┤
    │   Key-value store (memory / Redis)  │  ← transient counters + bodies
    └─────────────────────────────────────┘

    Request handling never reads module-level configuration: everything it
    needs arrives through the ProxyContext built by main.create_app().
"""

__version__ = "1.0.0"
