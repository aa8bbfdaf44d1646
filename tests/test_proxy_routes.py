"""
Edge Proxy - End-to-End Request Handling Tests
================================================

What:  Drives the full app (middleware, routes, handlers) over ASGI with the
       origin replaced by an in-process stub.

What we test:
    ✅ Preflight: 204, empty body, CORS, any path, never counted
    ✅ Health: synthetic JSON, works with the origin down
    ✅ Default route: 404 with CORS and no body
    ✅ Rate limiting: 101st request in a window gets 429 + Retry-After
    ✅ Caching: MISS then HIT, TTL expiry, auth paths never cached
    ✅ Forwarding: method, path, query, headers, body, header overlay
    ✅ Origin failure: 503 with the fixed error body
    ✅ Unexpected errors: 500 with a generic body and CORS
"""

import json
from datetime import datetime

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from edge_proxy.headers import CORS_HEADERS, SECURITY_HEADERS
from edge_proxy.main import create_app

IP = {"CF-Connecting-IP": "203.0.113.7"}


def assert_cors(response):
    for name, value in CORS_HEADERS.items():
        assert response.headers[name] == value


def assert_security(response):
    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class TestPreflight:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/sessions", "/health", "/anything/else", "/"])
    async def test_options_any_path(self, test_client, origin, path):
        response = await test_client.options(path)

        assert response.status_code == 204
        assert response.content == b""
        assert_cors(response)
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_preflight_not_rate_limited(self, test_client, store):
        await store.put("ratelimit:203.0.113.7", "100", expire_after_seconds=60)
        response = await test_client.options("/api/sessions", headers=IP)
        assert response.status_code == 204
        assert await store.get("ratelimit:203.0.113.7") == "100"


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_ok(self, test_client, origin):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/json"
        assert_cors(response)
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        parsed = datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))
        assert parsed.tzinfo is not None
        assert body["timestamp"].endswith("Z")
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_health_with_origin_down(self, test_client, origin):
        origin.responder = unreachable
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_health_any_method(self, test_client):
        response = await test_client.post("/health")
        assert response.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["PROPFIND", "TRACE", "DELETE"])
    async def test_health_unusual_methods(self, test_client, method):
        response = await test_client.request(method, "/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_health_has_request_id(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestDefaultRoute:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path", ["/", "/api", "/health/", "/apix/sessions", "/docs", "/openapi.json", "/v1/api/x"]
    )
    async def test_unknown_path_404(self, test_client, origin, path):
        response = await test_client.get(path)

        assert response.status_code == 404
        assert response.content == b""
        assert_cors(response)
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_unknown_path_post(self, test_client):
        response = await test_client.post("/submit", json={"a": 1})
        assert response.status_code == 404


class TestRateLimiting:

    @pytest.mark.asyncio
    async def test_101st_request_denied(self, test_client):
        for _ in range(100):
            response = await test_client.get("/health", headers=IP)
            assert response.status_code == 200

        response = await test_client.get("/health", headers=IP)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert_cors(response)
        assert response.json()["error"] == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_denied_before_origin(self, test_client, store, origin):
        await store.put("ratelimit:203.0.113.7", "100", expire_after_seconds=60)
        response = await test_client.get("/api/sessions", headers=IP)
        assert response.status_code == 429
        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_other_client_unaffected(self, test_client, store):
        await store.put("ratelimit:203.0.113.7", "100", expire_after_seconds=60)
        response = await test_client.get("/health", headers={"CF-Connecting-IP": "198.51.100.1"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_window_expires(self, test_client, store, clock):
        await store.put("ratelimit:203.0.113.7", "100", expire_after_seconds=60)
        assert (await test_client.get("/health", headers=IP)).status_code == 429

        clock.advance(60)
        assert (await test_client.get("/health", headers=IP)).status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_paths_are_counted(self, test_client, store):
        await test_client.get("/nowhere", headers=IP)
        assert await store.get("ratelimit:203.0.113.7") == "1"


class TestCaching:

    @pytest.mark.asyncio
    async def test_sessions_miss_then_hit(self, test_client, context, origin):
        origin.responder = lambda request: httpx.Response(200, json=[{"id": "s1"}])

        first = await test_client.get("/api/sessions", headers=IP)
        await context.tasks.drain()
        second = await test_client.get("/api/sessions", headers=IP)

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert second.status_code == 200
        assert second.headers["X-Cache"] == "HIT"
        assert second.headers["content-type"] == "application/json"
        assert second.json() == [{"id": "s1"}]
        assert second.content == first.content
        assert_cors(second)
        assert_security(second)
        assert len(origin.calls) == 1

    @pytest.mark.asyncio
    async def test_hit_expires_with_ttl(self, test_client, context, origin, clock):
        await test_client.get("/api/sessions")
        await context.tasks.drain()

        clock.advance(59)
        assert (await test_client.get("/api/sessions")).headers["X-Cache"] == "HIT"

        clock.advance(1)
        assert (await test_client.get("/api/sessions")).headers["X-Cache"] == "MISS"
        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_query_is_part_of_key(self, test_client, context, origin, store):
        await test_client.get("/api/sessions?page=1")
        await context.tasks.drain()

        response = await test_client.get("/api/sessions?page=2")
        assert response.headers["X-Cache"] == "MISS"
        assert await store.get("cache:/api/sessions?page=1") is not None
        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_auth_never_cached(self, test_client, context, origin, store):
        first = await test_client.get("/api/auth/login")
        await context.tasks.drain()
        second = await test_client.get("/api/auth/login")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "MISS"
        assert len(origin.calls) == 2
        assert await store.get("cache:/api/auth/login") is None

    @pytest.mark.asyncio
    async def test_non_json_not_cached(self, test_client, context, origin):
        origin.responder = lambda request: httpx.Response(
            200, text="<html></html>", headers={"Content-Type": "text/html"}
        )
        await test_client.get("/api/page")
        await context.tasks.drain()
        response = await test_client.get("/api/page")

        assert response.headers["X-Cache"] == "MISS"
        assert response.text == "<html></html>"
        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_error_status_not_cached(self, test_client, context, origin):
        origin.responder = lambda request: httpx.Response(404, json={"error": "nope"})
        await test_client.get("/api/memories/42")
        await context.tasks.drain()
        response = await test_client.get("/api/memories/42")

        assert response.status_code == 404
        assert response.headers["X-Cache"] == "MISS"
        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_post_not_cached(self, test_client, context, origin, store):
        await test_client.post("/api/sessions", json={"name": "x"})
        await context.tasks.drain()
        assert await store.get("cache:/api/sessions") is None

    @pytest.mark.asyncio
    async def test_post_bypasses_existing_cache_entry(self, test_client, store, origin):
        await store.put("cache:/api/sessions", "[]", expire_after_seconds=60)
        response = await test_client.post("/api/sessions", json={"name": "x"})
        assert response.headers["X-Cache"] == "MISS"
        assert len(origin.calls) == 1

    @pytest.mark.asyncio
    async def test_security_paths_cached_for_an_hour(self, test_client, context, clock):
        await test_client.get("/api/security/cves")
        await context.tasks.drain()

        clock.advance(3599)
        assert (await test_client.get("/api/security/cves")).headers["X-Cache"] == "HIT"

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_affect_response(
        self, test_client, context, store, monkeypatch
    ):
        from edge_proxy.exceptions import StoreError

        async def failing_put(key, value, expire_after_seconds):
            if key.startswith("cache:"):
                raise StoreError()

        monkeypatch.setattr(store, "put", failing_put)
        response = await test_client.get("/api/sessions")
        await context.tasks.drain()

        assert response.status_code == 200
        assert len(context.tasks.failures) == 1


class TestForwarding:

    @pytest.mark.asyncio
    async def test_path_and_query_forwarded(self, test_client, origin):
        await test_client.get("/api/memories/search?q=sql%20injection&limit=5")

        sent = origin.calls[0]
        assert sent.method == "GET"
        assert str(sent.url) == "http://origin.test/api/memories/search?q=sql%20injection&limit=5"

    @pytest.mark.asyncio
    async def test_body_and_method_forwarded(self, test_client, origin):
        payload = {"title": "note", "tags": ["a"]}
        await test_client.put("/api/memories/7", json=payload)

        sent = origin.calls[0]
        assert sent.method == "PUT"
        assert json.loads(sent.content) == payload

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["PROPFIND", "REPORT", "PATCH"])
    async def test_any_method_forwarded(self, test_client, origin, method):
        origin.responder = lambda request: httpx.Response(207, text="<multistatus/>")
        response = await test_client.request(method, "/api/files/notes", content=b"<propfind/>")

        assert response.status_code == 207
        assert response.text == "<multistatus/>"
        assert len(origin.calls) == 1
        assert origin.calls[0].method == method
        assert origin.calls[0].content == b"<propfind/>"
        assert str(origin.calls[0].url) == "http://origin.test/api/files/notes"

    @pytest.mark.asyncio
    async def test_get_sends_no_body(self, test_client, origin):
        await test_client.get("/api/sessions")
        assert origin.calls[0].content == b""

    @pytest.mark.asyncio
    async def test_headers_forwarded(self, test_client, origin):
        await test_client.get(
            "/api/sessions",
            headers={
                "Authorization": "Bearer token-123",
                "X-Request-ID": "req-1",
                "Proxy-Authorization": "Basic cHJveHk6c2VjcmV0",
                **IP,
            },
        )

        sent = origin.calls[0]
        assert sent.headers["Authorization"] == "Bearer token-123"
        assert sent.headers["X-Request-ID"] == "req-1"
        assert sent.headers["CF-Connecting-IP"] == "203.0.113.7"
        assert sent.headers["host"] == "origin.test"
        assert "proxy-authorization" not in sent.headers

    @pytest.mark.asyncio
    async def test_generated_request_id_forwarded(self, test_client, origin):
        response = await test_client.get("/api/sessions")
        assert origin.calls[0].headers["X-Request-ID"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_origin_status_and_body_relayed(self, test_client, origin):
        origin.responder = lambda request: httpx.Response(
            201, json={"id": "new"}, headers={"Location": "/api/memories/new"}
        )
        response = await test_client.post("/api/memories", json={})

        assert response.status_code == 201
        assert response.json() == {"id": "new"}
        assert response.headers["Location"] == "/api/memories/new"

    @pytest.mark.asyncio
    async def test_response_header_overlay(self, test_client, origin):
        origin.responder = lambda request: httpx.Response(
            200,
            json={},
            headers={
                "Access-Control-Allow-Origin": "https://evil.example",
                "X-Frame-Options": "SAMEORIGIN",
                "X-Custom": "kept",
            },
        )
        response = await test_client.get("/api/sessions")

        assert_cors(response)
        assert_security(response)
        assert response.headers["X-Custom"] == "kept"
        assert response.headers["X-Cache"] == "MISS"
        assert response.headers["X-Served-By"] == "Edge Proxy"
        assert response.headers.get_list("Access-Control-Allow-Origin") == ["*"]

    @pytest.mark.asyncio
    async def test_multiple_set_cookie_kept(self, test_client, origin):
        origin.responder = lambda request: httpx.Response(
            200,
            text="ok",
            headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")],
        )
        response = await test_client.get("/api/auth/login")
        assert response.headers.get_list("Set-Cookie") == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_origin_5xx_relayed_not_translated(self, test_client, origin):
        origin.responder = lambda request: httpx.Response(500, json={"error": "boom"})
        response = await test_client.get("/api/sessions")

        assert response.status_code == 500
        assert response.json() == {"error": "boom"}
        assert response.headers["X-Cache"] == "MISS"


class TestOriginUnavailable:

    @pytest.mark.asyncio
    async def test_connect_error_503(self, test_client, origin):
        origin.responder = unreachable
        response = await test_client.get("/api/sessions")

        assert response.status_code == 503
        assert response.json() == {
            "error": "Backend service unavailable",
            "message": "Unable to connect to API server",
        }
        assert response.headers["content-type"] == "application/json"
        assert_cors(response)

    @pytest.mark.asyncio
    async def test_timeout_503(self, test_client, origin):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        origin.responder = slow
        response = await test_client.post("/api/memories", json={})
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, test_client, context, origin, store):
        origin.responder = unreachable
        await test_client.get("/api/sessions")
        await context.tasks.drain()
        assert await store.get("cache:/api/sessions") is None


class TestUnexpectedError:

    @pytest.mark.asyncio
    async def test_store_crash_answers_500(self, proxy_settings, context, store, monkeypatch):
        async def broken_get(key):
            raise RuntimeError("store exploded")

        monkeypatch.setattr(store, "get", broken_get)
        app = create_app(proxy_settings, context=context)
        # Starlette re-raises after sending the 500; keep the response instead
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://edge.test") as client:
            response = await client.get("/health", headers={"X-Request-ID": "req-500"})

        assert response.status_code == 500
        assert response.json() == {
            "error": "internal_server_error",
            "message": "An unexpected error occurred.",
            "request_id": "req-500",
        }
        assert "exploded" not in response.text
        assert_cors(response)
