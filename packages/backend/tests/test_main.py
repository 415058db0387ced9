"""App factory tests."""

import pytest

from rollcall.cache.query_cache import QueryCache
from rollcall.main import asyncpg_dsn, create_app, invalidate_everything
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.query_keys import ALL_QUERY_KEYS


def test_asyncpg_dsn_strips_driver():
    assert asyncpg_dsn("postgresql+asyncpg://u:p@db:5432/rollcall") == "postgresql://u:p@db:5432/rollcall"


def test_create_app_parks_realtime_state():
    app = create_app()
    assert isinstance(app.state.query_cache, QueryCache)
    assert isinstance(app.state.debouncer, NotificationDebouncer)
    assert app.state.change_stream is None


def test_websocket_route_mounted():
    app = create_app()
    assert "/ws/dashboard" in {route.path for route in app.routes}


@pytest.mark.asyncio
async def test_invalidate_everything_marks_all_families_stale():
    cache = QueryCache()

    async def value():
        return 1

    for prefix in ALL_QUERY_KEYS:
        await cache.fetch((prefix, "x"), value)

    invalidate_everything(cache)

    assert cache.get_stats()["stale_entries"] == len(ALL_QUERY_KEYS)
