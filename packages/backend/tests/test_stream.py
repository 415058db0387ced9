"""PostgresChangeStream tests against a fake asyncpg connection.

Learn: asyncpg's listener API is small (add_listener, remove_listener,
add_termination_listener), so a fake connection that records calls and lets
the test fire NOTIFYs covers the transport without a database.
"""

import asyncio

import asyncpg
import pytest

from rollcall.realtime.stream import (
    ChangeStreamError,
    PostgresChangeStream,
    UnavailableChangeStream,
)
from rollcall.realtime.tables import TableName


class FakeConnection:
    def __init__(self, listen_error=None):
        self.listeners: dict[str, list] = {}
        self.termination_listeners = []
        self.closed = False
        self.terminated = False
        self.listen_error = listen_error

    async def add_listener(self, channel, callback):
        if self.listen_error is not None:
            raise self.listen_error
        self.listeners.setdefault(channel, []).append(callback)

    async def remove_listener(self, channel, callback):
        self.listeners[channel].remove(callback)

    def add_termination_listener(self, callback):
        self.termination_listeners.append(callback)

    def is_closed(self):
        return self.closed or self.terminated

    async def close(self):
        self.closed = True

    def terminate(self):
        self.terminated = True

    def notify(self, channel, payload="{}"):
        for callback in list(self.listeners.get(channel, [])):
            callback(self, 4242, channel, payload)

    def drop(self):
        """Simulate the server closing the connection."""
        self.terminated = True
        for callback in self.termination_listeners:
            callback(self)


class FakeConnector:
    """asyncpg.connect stand-in. Queued errors are raised by the next connect
    (connect_errors) or by the next connection's add_listener (listen_errors)."""

    def __init__(self):
        self.connections: list[FakeConnection] = []
        self.connect_errors: list[BaseException] = []
        self.listen_errors: list[BaseException] = []

    async def __call__(self, dsn):
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        error = self.listen_errors.pop(0) if self.listen_errors else None
        conn = FakeConnection(listen_error=error)
        self.connections.append(conn)
        return conn


@pytest.fixture()
def connector():
    return FakeConnector()


@pytest.fixture()
def pg_stream(connector):
    return PostgresChangeStream(
        "postgresql://test/rollcall",
        channel_prefix="rollcall:changes",
        connect=connector,
        initial_retry_delay=0,
        max_retry_delay=0,
    )


@pytest.mark.asyncio
async def test_subscribe_before_start_fails(pg_stream):
    with pytest.raises(ChangeStreamError):
        await pg_stream.subscribe(TableName.WORKERS, lambda: None)


@pytest.mark.asyncio
async def test_notify_reaches_subscriber(pg_stream, connector):
    await pg_stream.start()
    seen = []
    handle = await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append("workers"))

    assert handle.channel == "rollcall:changes:workers"
    connector.connections[0].notify("rollcall:changes:workers", '{"op": "UPDATE"}')
    connector.connections[0].notify("rollcall:changes:departments")

    assert seen == ["workers"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery_and_is_idempotent(pg_stream, connector):
    await pg_stream.start()
    seen = []
    handle = await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append(1))

    await pg_stream.unsubscribe(handle)
    await pg_stream.unsubscribe(handle)
    connector.connections[0].notify("rollcall:changes:workers")

    assert seen == []
    assert pg_stream.subscription_count() == 0


@pytest.mark.asyncio
async def test_two_subscriptions_same_table_are_independent(pg_stream, connector):
    await pg_stream.start()
    seen = []
    first = await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append("a"))
    await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append("b"))

    await pg_stream.unsubscribe(first)
    connector.connections[0].notify("rollcall:changes:workers")

    assert seen == ["b"]


@pytest.mark.asyncio
async def test_listen_failure_raises_change_stream_error(pg_stream, connector):
    connector.listen_errors = [OSError("connection reset")]
    await pg_stream.start()
    with pytest.raises(ChangeStreamError):
        await pg_stream.subscribe(TableName.WORKERS, lambda: None)
    assert pg_stream.subscription_count() == 0


@pytest.mark.asyncio
async def test_reconnect_reregisters_each_listener_once(pg_stream, connector):
    await pg_stream.start()
    seen = []
    await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append("workers"))
    await pg_stream.subscribe(TableName.DEPARTMENTS, lambda: seen.append("departments"))
    resynced = []
    pg_stream.add_reconnect_listener(lambda: resynced.append(True))

    await pg_stream.reconnect()

    old, new = connector.connections
    assert old.terminated
    assert {ch: len(cbs) for ch, cbs in new.listeners.items()} == {
        "rollcall:changes:workers": 1,
        "rollcall:changes:departments": 1,
    }
    new.notify("rollcall:changes:workers")
    assert seen == ["workers"]
    assert resynced == [True]
    assert pg_stream.reconnects == 1


@pytest.mark.asyncio
async def test_dropped_connection_triggers_reconnect(pg_stream, connector):
    await pg_stream.start()
    seen = []
    await pg_stream.subscribe(TableName.ATTENDANCE_EVENTS, lambda: seen.append(1))

    connector.connections[0].drop()
    await pg_stream._reconnect_task

    assert len(connector.connections) == 2
    assert pg_stream.connected
    connector.connections[1].notify("rollcall:changes:attendance_events")
    assert seen == [1]


@pytest.mark.asyncio
async def test_termination_of_replaced_connection_is_ignored(pg_stream, connector):
    await pg_stream.start()
    await pg_stream.reconnect()

    connector.connections[0].drop()

    assert pg_stream._reconnect_task is None
    assert len(connector.connections) == 2


@pytest.mark.asyncio
async def test_stop_closes_and_forgets(pg_stream, connector):
    await pg_stream.start()
    await pg_stream.subscribe(TableName.WORKERS, lambda: None)

    await pg_stream.stop()

    assert connector.connections[0].closed
    assert not pg_stream.connected
    assert pg_stream.subscription_count() == 0


@pytest.mark.asyncio
async def test_unavailable_stream_always_fails():
    stream = UnavailableChangeStream()
    with pytest.raises(ChangeStreamError):
        await stream.subscribe(TableName.WORKERS, lambda: None)


@pytest.mark.asyncio
async def test_interface_error_during_relisten_keeps_retrying(pg_stream, connector):
    await pg_stream.start()
    seen = []
    await pg_stream.subscribe(TableName.WORKERS, lambda: seen.append(1))
    connector.listen_errors = [asyncpg.InterfaceError("connection reset mid-LISTEN")]

    connector.connections[0].drop()
    await pg_stream._reconnect_task

    first, failed, current = connector.connections
    assert failed.is_closed()
    assert pg_stream.connected
    assert pg_stream.reconnect_failures == 1
    current.notify("rollcall:changes:workers")
    assert seen == [1]


@pytest.mark.asyncio
async def test_connect_timeout_keeps_retrying(pg_stream, connector):
    await pg_stream.start()
    connector.connect_errors = [asyncio.TimeoutError(), RuntimeError("pool exhausted")]

    connector.connections[0].drop()
    await pg_stream._reconnect_task

    assert len(connector.connections) == 2
    assert pg_stream.connected
    assert pg_stream.reconnect_failures == 2


@pytest.mark.asyncio
async def test_failed_reconnect_keeps_current_connection(pg_stream, connector):
    await pg_stream.start()
    await pg_stream.subscribe(TableName.WORKERS, lambda: None)
    connector.listen_errors = [asyncpg.InterfaceError("connection reset")]

    with pytest.raises(asyncpg.InterfaceError):
        await pg_stream.reconnect()

    original, failed = connector.connections
    assert failed.is_closed()
    assert not original.is_closed()
    assert pg_stream.reconnects == 0


@pytest.mark.asyncio
async def test_disconnect_and_reconnect_listeners(pg_stream, connector):
    await pg_stream.start()
    events = []
    pg_stream.add_disconnect_listener(lambda: events.append("down"))
    pg_stream.add_reconnect_listener(lambda: events.append("up"))

    connector.connections[0].drop()
    assert events == ["down"]

    await pg_stream._reconnect_task
    assert events == ["down", "up"]


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_the_rest(pg_stream, connector):
    await pg_stream.start()
    events = []

    def broken():
        raise RuntimeError("listener bug")

    pg_stream.add_disconnect_listener(broken)
    pg_stream.add_disconnect_listener(lambda: events.append("down"))

    connector.connections[0].drop()
    await pg_stream._reconnect_task

    assert events == ["down"]


@pytest.mark.asyncio
async def test_removed_listener_is_not_called(pg_stream, connector):
    await pg_stream.start()
    events = []
    listener = lambda: events.append("down")  # noqa: E731
    pg_stream.add_disconnect_listener(listener)
    pg_stream.remove_disconnect_listener(listener)
    pg_stream.remove_disconnect_listener(listener)

    connector.connections[0].drop()
    await pg_stream._reconnect_task

    assert events == []


@pytest.mark.asyncio
async def test_stop_cancels_pending_reconnect(connector):
    stream = PostgresChangeStream("postgresql://test/rollcall", connect=connector,
                                  initial_retry_delay=30, max_retry_delay=60)
    await stream.start()
    connector.connections[0].drop()
    task = stream._reconnect_task

    await stream.stop()

    assert task.cancelled()
    assert len(connector.connections) == 1


def test_unavailable_stream_is_never_connected():
    assert not UnavailableChangeStream().connected
