"""Realtime config and dashboard route tests.

Learn: Dashboard routes are exercised with a stub DashboardService via
app.dependency_overrides, so no database is needed. The service itself is
covered in test_dashboard_service.py.
"""

import uuid

import pytest

from rollcall.api.deps import get_dashboard_service
from rollcall.main import app
from rollcall.realtime.tables import TableName
from rollcall.services.dashboard_service import NotFoundError


@pytest.mark.asyncio
async def test_realtime_config_lists_every_table(client):
    resp = await client.get("/api/v1/realtime/config")
    assert resp.status_code == 200
    data = resp.json()

    assert [t["name"] for t in data["tables"]] == [t.value for t in TableName]
    workers = next(t for t in data["tables"] if t["name"] == "workers")
    assert "worker-profile" in workers["invalidates"]
    assert workers["toast"]["description"] == "Worker data refreshed"


@pytest.mark.asyncio
async def test_realtime_config_reverse_index_and_presets(client):
    data = (await client.get("/api/v1/realtime/config")).json()

    assert set(data["query_keys"]["overview-stats"]) == {t.value for t in TableName}
    assert data["dashboards"]["worker"] == sorted(
        ["attendance_events", "attendance_daily_rollups", "worker_mappings"]
    )
    assert data["toasts"]["position"] == "bottom-right"


class StubService:
    def __init__(self):
        self.calls = []

    async def overview_stats(self):
        self.calls.append("overview_stats")
        return {"total_workers": 3, "attendance_rate": 67}

    async def worker_profile(self, worker_id):
        raise NotFoundError(f"Worker {worker_id} not found")

    async def establishment_attendance_trend(self, establishment_id, days):
        self.calls.append(("trend", days))
        return []

    async def establishment_attendance_trend_range(self, establishment_id, start, end):
        self.calls.append(("range", start.isoformat(), end.isoformat()))
        return []


@pytest.fixture()
def stub_service():
    svc = StubService()
    app.dependency_overrides[get_dashboard_service] = lambda: svc
    return svc


@pytest.mark.asyncio
async def test_overview_stats_route(client, stub_service):
    resp = await client.get("/api/v1/overview/stats")
    assert resp.status_code == 200
    assert resp.json()["attendance_rate"] == 67


@pytest.mark.asyncio
async def test_missing_worker_is_404(client, stub_service):
    resp = await client.get(f"/api/v1/workers/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_trend_uses_range_when_both_bounds_given(client, stub_service):
    est = uuid.uuid4()
    await client.get(f"/api/v1/establishments/{est}/attendance/trend?days=14")
    await client.get(
        f"/api/v1/establishments/{est}/attendance/trend?start=2026-10-01&end=2026-10-07"
    )
    assert stub_service.calls == [("trend", 14), ("range", "2026-10-01", "2026-10-07")]


@pytest.mark.asyncio
async def test_inverted_range_rejected(client, stub_service):
    resp = await client.get(
        f"/api/v1/establishments/{uuid.uuid4()}/attendance/trend?start=2026-10-07&end=2026-10-01"
    )
    assert resp.status_code == 422
