"""Test fixtures — in-memory fakes for the realtime layer.

Learn: The coordinator, debouncer and cache are written against small
interfaces (ChangeStream, invalidate(prefix), a sink, a clock), so tests
drive them with fakes instead of a live Postgres:

1. FakeChangeStream records subscribe/unsubscribe calls and lets a test
   fire a change on a table (or replay one the transport "had queued").
2. RecordingCache remembers every invalidated prefix.
3. ManualClock is stepped by hand, so debounce windows need no sleeps.

HTTP tests use the app over ASGITransport without running the lifespan,
so no Redis or LISTEN connection is opened.
"""

import itertools

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rollcall.cache.query_cache import QueryCache
from rollcall.main import app
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.stream import ChangeStream, ChangeStreamError, SubscriptionHandle


class FakeChangeStream(ChangeStream):
    """ChangeStream that delivers only when the test says so."""

    def __init__(self, fail_tables=()):
        super().__init__()
        self.up = True
        self.fail_tables = set(fail_tables)
        self.handles: dict[int, SubscriptionHandle] = {}
        self.subscribe_calls: list = []
        self.unsubscribe_calls: list = []
        self.retired: list[SubscriptionHandle] = []
        self._ids = itertools.count(1)

    async def subscribe(self, table, on_change):
        self.subscribe_calls.append(table)
        if table in self.fail_tables:
            raise ChangeStreamError(f"cannot listen on {table}")
        handle = SubscriptionHandle(
            table=table, channel=f"test:{table}", id=next(self._ids), callback=on_change
        )
        self.handles[handle.id] = handle
        return handle

    async def unsubscribe(self, handle):
        self.unsubscribe_calls.append(handle.table)
        if self.handles.pop(handle.id, None) is not None:
            self.retired.append(handle)

    @property
    def connected(self) -> bool:
        return self.up

    def disconnect(self) -> None:
        """Drop the transport: every mounted view is stale until restore()."""
        self.up = False
        self._fire(self._disconnect_listeners, "disconnected")

    def restore(self) -> None:
        self.up = True
        self._fire(self._reconnect_listeners, "reconnected")

    def live_tables(self) -> list:
        return sorted(str(h.table) for h in self.handles.values())

    def emit(self, table) -> int:
        """Deliver one change on `table` to every live handle."""
        delivered = 0
        for handle in list(self.handles.values()):
            if handle.table == table:
                handle.callback()
                delivered += 1
        return delivered

    def emit_retired(self, table) -> None:
        """Deliver a change that was queued before the handle was closed."""
        for handle in self.retired:
            if handle.table == table:
                handle.callback()


class RecordingCache:
    """Invalidation target that records prefixes (and can fail on some)."""

    def __init__(self, fail_on=()):
        self.invalidated: list[str] = []
        self.fail_on = set(fail_on)

    def invalidate(self, prefix):
        if prefix in self.fail_on:
            raise RuntimeError(f"invalidate {prefix} failed")
        self.invalidated.append(prefix)
        return 1


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def stream():
    return FakeChangeStream()


@pytest.fixture()
def cache():
    return RecordingCache()


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def toasts():
    return []


@pytest.fixture()
def debouncer(toasts, clock):
    return NotificationDebouncer(toasts.append, interval=3.0, clock=clock)


@pytest_asyncio.fixture()
async def client():
    """HTTP client against the app with a fresh query cache per test."""
    app.state.query_cache = QueryCache()
    app.state.change_stream = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
