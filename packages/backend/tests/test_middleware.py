"""Request ID middleware tests."""

import pytest
import structlog

from rollcall.middleware.request_id import RequestIdMiddleware


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/realtime/config")
    r2 = await client.get("/api/v1/realtime/config")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/api/v1/realtime/config", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_request_id_bound_to_log_context():
    seen = {}

    async def app(scope, receive, send):
        seen.update(structlog.contextvars.get_contextvars())
        await send({"type": "http.response.start", "status": 204, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=RequestIdMiddleware(app))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        await ac.get("/api/v1/overview/stats", headers={"X-Request-ID": "abc"})

    assert seen["request_id"] == "abc"
    assert seen["method"] == "GET"
    assert seen["path"] == "/api/v1/overview/stats"
