"""Tests for middleware — security headers, request IDs, error shape.

Learn: Rate limiting is skipped in tests (Redis is never connected),
so the limiter itself is exercised with a tiny in-memory stand-in.
"""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tunetrace.middleware import rate_limit
from tunetrace.middleware.rate_limit import RateLimitMiddleware


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/health")
    r2 = await client.get("/api/health")
    assert "X-Request-ID" in r1.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    r = await client.get("/api/health", headers={"X-Request-ID": "trace-12345"})
    assert r.headers["X-Request-ID"] == "trace-12345"


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    r = await client.get("/api/health")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_unknown_route_uses_error_shape(client):
    r = await client.get("/api/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}


# ─── Rate limiting ───────────────────────────────────────


class CountingRedis:
    """Minimal async INCR/EXPIRE store."""

    def __init__(self):
        self.counts: dict[str, int] = {}

    async def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        return True


def _limited_app(auth_rpm=2, default_rpm=100) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=default_rpm, auth_rpm=auth_rpm)

    @app.post("/api/auth/login")
    async def login():
        return {"ok": True}

    @app.get("/api/concerts")
    async def concerts():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_rate_limit_applies_stricter_auth_bucket(monkeypatch):
    redis = CountingRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: redis)

    transport = ASGITransport(app=_limited_app(auth_rpm=2))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        assert (await c.post("/api/auth/login")).status_code == 200
        second = await c.post("/api/auth/login")
        assert second.headers["X-RateLimit-Remaining"] == "0"
        third = await c.post("/api/auth/login")
        assert third.status_code == 429
        assert "error" in third.json()
        assert third.headers["Retry-After"] == "60"

        # Other endpoints count against their own bucket.
        r = await c.get("/api/concerts")
        assert r.status_code == 200
        assert r.headers["X-RateLimit-Limit"] == "100"


@pytest.mark.asyncio
async def test_rate_limit_skipped_without_redis():
    transport = ASGITransport(app=_limited_app(auth_rpm=1))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        for _ in range(3):
            r = await c.post("/api/auth/login")
            assert r.status_code == 200
            assert "X-RateLimit-Limit" not in r.headers
