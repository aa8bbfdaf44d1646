"""
Edge Proxy - Test Configuration (conftest.py)
===============================================

What:  Shared pytest fixtures for the entire test suite.
How:   The app under test gets a ProxyContext built from test settings, a
       MemoryStore on a fake clock, and an httpx client whose transport is
       an in-process origin stub. No network, no Redis.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── clock: Controllable time source for store expiry
    ├── store: MemoryStore on that clock
    ├── origin: Origin stub recording every request it receives
    ├── proxy_settings: Settings pointing at the stub origin
    ├── context: ProxyContext wiring the above together
    └── test_client: HTTPX AsyncClient talking to the app over ASGI
"""

import os
from typing import Callable, List

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Set BEFORE app imports: main.py builds a default app at import time
os.environ["API_URL"] = "http://origin.test"
os.environ["CACHE_STORE_URL"] = "memory://"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

from edge_proxy.config import Settings  # noqa: E402
from edge_proxy.context import build_context  # noqa: E402
from edge_proxy.main import create_app  # noqa: E402
from edge_proxy.services.kv_store import MemoryStore  # noqa: E402

ORIGIN_URL = "http://origin.test"


class FakeClock:
    """Monotonic clock stand-in; tests advance it explicitly."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class OriginBody(httpx.AsyncByteStream):
    """Unread async body, as a real network transport hands it over."""

    def __init__(self, content: bytes):
        self.content = content

    async def __aiter__(self):
        yield self.content


class OriginStub:
    """
    In-process origin behind httpx.MockTransport.

    Usage:
        origin.responder = lambda request: httpx.Response(200, json={...})
        ...
        assert len(origin.calls) == 1
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json={"ok": True})
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        canned = self.responder(request)
        # httpx reads in-memory bodies eagerly; re-wrap so the proxy can stream it
        return httpx.Response(
            canned.status_code,
            headers=canned.headers,
            stream=OriginBody(canned.content),
        )


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def origin():
    return OriginStub()


@pytest.fixture
def proxy_settings():
    return Settings(
        api_url=ORIGIN_URL,
        environment="test",
        cache_store_url="memory://",
        rate_limit_requests=100,
        rate_limit_window=60,
    )


@pytest.fixture
def context(proxy_settings, store, origin):
    """
    ProxyContext with the MemoryStore and the origin stub.

    Tests await `context.tasks.drain()` to let background cache writes land.
    """
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(origin))
    return build_context(proxy_settings, store=store, http_client=http_client)


@pytest_asyncio.fixture
async def test_client(proxy_settings, context):
    """
    HTTPX AsyncClient routed straight into the app via ASGITransport.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    app = create_app(proxy_settings, context=context)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://edge.test") as client:
        yield client
    await context.tasks.drain()
    await context.http_client.aclose()
