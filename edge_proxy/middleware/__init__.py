# Middleware package init
"""
Edge Proxy - Middleware Package
=================================

Middleware Chain (order matters!):
    Request → [CORS] → [Request ID] → [Logging] → [Rate Limit] → Route Handler

    1. CORS FIRST: preflights are answered here and never counted
    2. Request ID: correlation ID for logs and the origin
    3. Logging: sees the final status, including 429s
    4. Rate Limit: last gate before routing

    Response ← [CORS] ← [Request ID] ← [Logging] ← [Rate Limit] ← Route Handler

    On the way out CORS headers are stamped on every response.
"""
