"""
Edge Proxy - FastAPI Application Factory
==========================================

What:  Creates and configures the proxy application.
How:   Factory pattern: create_app() returns a configured FastAPI instance
       holding an immutable ProxyContext on app.state.
Who:   uvicorn (uvicorn edge_proxy.main:app) and the test suite.

Application Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                      FastAPI App                            │
    │                                                             │
    │  Middleware Chain (outermost first):                        │
    │  ┌──────┐ ┌────────┐ ┌─────────┐ ┌────────────┐             │
    │  │ CORS │→│ Req ID │→│ Logging │→│ Rate Limit │             │
    │  └──────┘ └────────┘ └─────────┘ └────────────┘             │
    │    OPTIONS → 204 here                                       │
    │                                                             │
    │  Routes:                                                    │
    │  ┌──────────────┐ ┌──────────────────┐ ┌─────────────────┐  │
    │  │ /health      │ │ /api/{path}      │ │ anything else   │  │
    │  │ (synthetic)  │ │ (cache → origin) │ │ → 404           │  │
    │  └──────────────┘ └──────────────────┘ └─────────────────┘  │
    │                                                             │
    │  Exception Handlers:                                        │
    │  OriginUnavailable→503 │ HTTP→bare │ *→500                  │
    └─────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, validate settings (log, don't exit)
    Shutdown:  drain background cache writes, close HTTP client and store
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from edge_proxy import __version__
from edge_proxy.config import Settings, settings as default_settings
from edge_proxy.context import ProxyContext, build_context
from edge_proxy.exceptions import OriginUnavailableError
from edge_proxy.headers import CORS_HEADERS
from edge_proxy.middleware.cors import CORSHeadersMiddleware
from edge_proxy.middleware.logging import RequestLoggingMiddleware
from edge_proxy.middleware.rate_limit import RateLimitMiddleware
from edge_proxy.middleware.request_id import RequestIDMiddleware, request_id_var
from edge_proxy.routes import health, proxy
from edge_proxy.schemas.responses import ErrorResponse

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str) -> None:
    """
    Configure logging for the entire application.

    What:    Root logger to stdout with one consistent line format.
    When:    Called once during app startup (before any other initialization).

    Format: 2024-01-15T12:00:00 [INFO] edge_proxy.access: GET /api/... 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # One line per outbound request / accepted connection otherwise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

def make_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Startup:
            1. Setup logging
            2. Validate settings; problems are logged, the proxy still starts
               so /health keeps answering
        Shutdown:
            1. Wait for pending cache writes
            2. Close the origin HTTP client and the store
        """
        setup_logging(app_settings.log_level)
        logger.info("Edge proxy %s starting (%s)", __version__, app_settings.environment)

        try:
            app_settings.validate_required_for_production()
        except ValueError as e:
            logger.error("Configuration error: %s", str(e))

        ctx: ProxyContext = app.state.context
        logger.info("Origin: %s", ctx.origin_url)
        logger.info("Store: %s", type(ctx.store).__name__)
        logger.info(
            "Listening on http://%s:%d", app_settings.backend_host, app_settings.backend_port
        )

        yield

        logger.info("Edge proxy shutting down (%d pending cache writes)...", ctx.tasks.pending)
        await ctx.aclose()
        logger.info("Shutdown complete.")

    return lifespan


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions raised by routes to responses.

    Handler table:
        OriginUnavailableError  → 503, fixed {"error", "message"} body
        HTTPException (404/405) → bare status, empty body
        Exception (fallback)    → 500, generic body, stack trace logged

    Rate limiting answers 429 inside RateLimitMiddleware, before routing.
    CORS headers are stamped by CORSHeadersMiddleware on the way out, except
    for the 500 fallback: it runs outside the middleware stack and sets them
    itself.
    """

    @app.exception_handler(OriginUnavailableError)
    async def handle_origin_unavailable(request: Request, exc: OriginUnavailableError):
        """Origin unreachable: fixed body, details stay in the logs."""
        body = ErrorResponse(error=exc.error, message=exc.message)
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        """Unknown paths (and unsupported methods) answer with no body."""
        return Response(status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """
        Catch-all for truly unexpected errors.

        Stack trace is logged server-side ONLY (never in response).
        """
        # request.state is shared with the middleware; the ContextVar is not
        rid = getattr(request.state, "request_id", None) or request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred.",
            request_id=rid,
        )
        return JSONResponse(
            status_code=500,
            content=body.model_dump(exclude_none=True),
            headers={**CORS_HEADERS, "X-Request-ID": rid} if rid else CORS_HEADERS,
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    context: Optional[ProxyContext] = None,
) -> FastAPI:
    """
    Create and configure the proxy application.

    Args:
        app_settings: Settings to build from (default: environment settings)
        context: Prebuilt ProxyContext; tests inject one with a MemoryStore
                 and an httpx.MockTransport-backed client

    Returns: Fully configured FastAPI instance.
    """
    app_settings = app_settings or default_settings
    app = FastAPI(
        title="Edge Proxy",
        description="Reverse proxy with edge caching, rate limiting and security headers.",
        version=__version__,
        # Only /health and /api/ exist; every other path must 404
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
        lifespan=make_lifespan(app_settings),
    )
    app.state.context = context or build_context(app_settings)

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition: the last one added
    # is the outermost. Execution order: CORS → RequestID → Logging → RateLimit
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware, client_ip_header=app_settings.client_ip_header)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(CORSHeadersMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(proxy.router)

    return app


# uvicorn expects `edge_proxy.main:app` to be importable
app = create_app()
