"""
Edge Proxy - Application Configuration
========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and exposes a `settings` object.
Who:   Read by the app factory, which turns it into an immutable ProxyContext
       (see context.py). Request-handling code never reads `settings` directly.
When:  Loaded once at module import time; validated before the app starts.

Environment contract:
    API_URL            Origin base URL requests are relayed to
    SUPABASE_URL       Auth provider URL (carried for the origin, unused here)
    SUPABASE_ANON_KEY  Auth provider key (carried for the origin, unused here)
    CACHE_STORE_URL    Key-value store: memory:// or redis://host:port/db
    ENVIRONMENT        Deployment environment name reported by /health
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Production deployments MUST
    override API_URL and usually CACHE_STORE_URL.
    """

    # ── Origin ────────────────────────────────────────────────────────────
    # What: Base URL of the upstream API; path + query are appended verbatim
    api_url: str = Field(
        default="http://localhost:8080",
        description="Origin API base URL",
    )

    # What: Seconds before an origin fetch is abandoned; 0 disables the timeout
    origin_timeout: float = Field(default=30.0, ge=0, le=600)

    # What: Value of the X-Served-By marker on proxied responses
    served_by: str = Field(default="Edge Proxy")

    # ── Auth Provider ─────────────────────────────────────────────────────
    # Passed through to the deployment; the proxy itself never reads them.
    supabase_url: str = Field(default="")
    supabase_anon_key: str = Field(default="")

    # ── Key-Value Store ───────────────────────────────────────────────────
    # memory://          process-local store (single worker, dev, tests)
    # redis://host/0     shared store across workers and instances
    cache_store_url: str = Field(default="memory://")

    environment: str = Field(default="development")

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # What: Fixed-window counter per client identifier
    rate_limit_requests: int = Field(default=100, ge=1, le=100_000)
    rate_limit_window: int = Field(default=60, ge=1, le=86400)  # seconds

    # What: Trusted header carrying the connecting client IP
    # Clients without it share the fallback bucket (see rate_limiter.py)
    client_ip_header: str = Field(default="CF-Connecting-IP")

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8787, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def origin_timeout_or_none(self) -> Optional[float]:
        """httpx treats None as "no timeout"; the env var uses 0 for that."""
        return self.origin_timeout or None

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # API_URL and api_url both work
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError listing them.
        """
        errors = []
        parsed = urlparse(self.api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(
                f"API_URL '{self.api_url}' is not an absolute http(s) URL."
            )
        if self.environment == "production" and self.cache_store_url.startswith("memory://"):
            errors.append(
                "CACHE_STORE_URL is memory:// in production; counters and cache "
                "entries will not be shared between workers."
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Module-level instance used by the default app in main.py
settings = Settings()
