"""Health endpoint tests."""

import pytest

from rollcall.main import app

from conftest import FakeChangeStream


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_realtime_state(client):
    resp = await client.get("/api/v1/health")
    data = resp.json()

    assert data["change_stream"] == "disabled"
    assert data["realtime"]["subscriptions"] == 0
    assert data["realtime"]["cache"]["entries"] == 0
    assert data["realtime"]["toasts"]["interval_seconds"] == 3.0


@pytest.mark.asyncio
async def test_health_degraded_when_stream_disconnected(client):
    class DownStream(FakeChangeStream):
        connected = False
        reconnects = 2
        reconnect_failures = 5

        def subscription_count(self):
            return 0

    app.state.change_stream = DownStream()
    resp = await client.get("/api/v1/health")
    data = resp.json()

    assert data["status"] == "degraded"
    assert data["change_stream"] == "disconnected"
    assert data["realtime"]["reconnects"] == 2
    assert data["realtime"]["reconnect_failures"] == 5
