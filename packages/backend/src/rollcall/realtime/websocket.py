"""Dashboard WebSocket — one connection is one mounted dashboard view.

Learn: The browser opens /ws/dashboard?tables=workers,attendance_events
(or ?dashboard=worker for a preset). The socket body runs inside
use_realtime(), so for its lifetime we hold subscriptions for exactly
those tables and they are torn down however it ends. Every invalidated
prefix is pushed to the client as

    {"type": "query.invalidated", "prefix": "worker-today-attendance"}

so it can refetch, and debounced toasts from the Redis channel are forwarded
as {"type": "toast", ...}. Client messages:

    {"type": "ping"}                          → {"type": "pong"}
    {"type": "subscribe", "tables": [...]}    → re-activate with a new set

A table whose subscription could not be opened is reported with
{"type": "realtime.degraded", "tables": [...]}: the view keeps working
but will not auto-refresh for those tables. The same message covers every
table while the LISTEN connection is down; {"type": "realtime.restored"}
follows once it is back.
"""

import asyncio
import itertools
import json
from typing import Optional

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from rollcall.cache.query_cache import QueryCache
from rollcall.realtime.coordinator import RealtimeHandle, SubscriptionError
from rollcall.realtime.pubsub import TOAST_CHANNEL, get_redis, redis_available
from rollcall.realtime.stream import ChangeStream, UnavailableChangeStream
from rollcall.realtime.tables import DASHBOARD_PRESETS, UnknownTableError, parse_tables
from rollcall.realtime.view import use_dashboard_realtime, use_realtime

logger = structlog.get_logger()

router = APIRouter()

_view_ids = itertools.count(1)


class ViewInvalidations:
    """Invalidates the shared cache and tells one socket which prefix went stale."""

    def __init__(self, cache: QueryCache, outbox: asyncio.Queue):
        self.cache = cache
        self.outbox = outbox

    def invalidate(self, prefix: str) -> int:
        matched = self.cache.invalidate(prefix)
        self.outbox.put_nowait({"type": "query.invalidated", "prefix": prefix})
        return matched


def _requested_tables(tables: Optional[str], dashboard: Optional[str]) -> list[str]:
    if dashboard:
        if dashboard not in DASHBOARD_PRESETS:
            raise UnknownTableError(f"Unknown dashboard: {dashboard!r}")
        return [t.value for t in DASHBOARD_PRESETS[dashboard]]
    if not tables:
        return []
    return [name.strip() for name in tables.split(",") if name.strip()]


def _report(handle: RealtimeHandle, outbox: asyncio.Queue, error: Optional[str] = None) -> None:
    """Tell the client which tables are live and which are degraded."""
    if handle.degraded:
        outbox.put_nowait({
            "type": "realtime.degraded",
            "tables": sorted(str(t) for t in handle.degraded),
            "error": error or "Could not subscribe",
        })
    outbox.put_nowait({
        "type": "subscribed",
        "tables": sorted(str(t) for t in handle.tables),
    })


async def _update(handle: RealtimeHandle, tables: list[str], outbox: asyncio.Queue) -> None:
    """Re-activate with a new table set. UnknownTableError propagates."""
    error = None
    try:
        await handle.update(tables)
    except SubscriptionError as e:
        error = str(e)
    _report(handle, outbox, error)


async def _send_loop(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


async def _forward_toasts(outbox: asyncio.Queue) -> None:
    """Relay the process-wide toast channel onto this socket's outbox."""
    pubsub = get_redis().pubsub()
    await pubsub.subscribe(TOAST_CHANNEL)
    try:
        async for message in pubsub.listen():
            if message["type"] != "message":
                continue
            try:
                outbox.put_nowait(json.loads(message["data"]))
            except json.JSONDecodeError:
                logger.warning("realtime.toast_malformed", data=message["data"])
    finally:
        await pubsub.unsubscribe(TOAST_CHANNEL)
        await pubsub.aclose()


class StreamStatus:
    """Pushes transport drops and recoveries to one socket.

    While the LISTEN connection is down every table of the view is stale,
    so the client hears realtime.degraded right away. On recovery the
    view's prefixes are invalidated (changes in the gap were lost) and the
    client hears realtime.restored.
    """

    def __init__(self, handle: RealtimeHandle, stream: ChangeStream, outbox: asyncio.Queue):
        self.handle = handle
        self.stream = stream
        self.outbox = outbox

    def __enter__(self) -> "StreamStatus":
        self.stream.add_disconnect_listener(self.on_disconnect)
        self.stream.add_reconnect_listener(self.on_reconnect)
        return self

    def __exit__(self, *exc) -> None:
        self.stream.remove_disconnect_listener(self.on_disconnect)
        self.stream.remove_reconnect_listener(self.on_reconnect)

    def on_disconnect(self) -> None:
        self.outbox.put_nowait({
            "type": "realtime.degraded",
            "tables": sorted(str(t) for t in self.handle.tables),
            "error": "Change stream disconnected",
        })

    def on_reconnect(self) -> None:
        self.handle.refresh()
        self.outbox.put_nowait({
            "type": "realtime.restored",
            "tables": sorted(str(t) for t in self.handle.tables),
        })


async def _serve(websocket: WebSocket, handle: RealtimeHandle, outbox: asyncio.Queue) -> None:
    """Client message loop. Returns when the client disconnects."""
    while True:
        try:
            message = json.loads(await websocket.receive_text())
        except json.JSONDecodeError:
            outbox.put_nowait({"type": "error", "message": "Invalid JSON"})
            continue
        if not isinstance(message, dict):
            outbox.put_nowait({"type": "error", "message": "Expected a JSON object"})
            continue

        kind = message.get("type")
        if kind == "ping":
            outbox.put_nowait({"type": "pong"})
        elif kind == "subscribe":
            try:
                await _update(handle, message.get("tables") or [], outbox)
            except UnknownTableError as e:
                outbox.put_nowait({"type": "error", "message": str(e)})
        else:
            outbox.put_nowait({"type": "error", "message": f"Unknown message type: {kind!r}"})


@router.websocket("/ws/dashboard")
async def dashboard_socket(
    websocket: WebSocket,
    tables: Optional[str] = None,
    dashboard: Optional[str] = None,
):
    await websocket.accept()
    state = websocket.app.state
    view = f"ws-{next(_view_ids)}"
    log = logger.bind(view=view)

    try:
        requested = _requested_tables(tables, dashboard)
        parse_tables(requested)
    except UnknownTableError as e:
        await websocket.send_json({"type": "error", "message": str(e)})
        await websocket.close(code=4400)
        return

    outbox: asyncio.Queue = asyncio.Queue()
    stream = getattr(state, "change_stream", None) or UnavailableChangeStream()

    options = dict(
        stream=stream,
        cache=ViewInvalidations(state.query_cache, outbox),
        debouncer=getattr(state, "debouncer", None),
        view=view,
    )
    acquire = use_dashboard_realtime(dashboard, **options) if dashboard else use_realtime(requested, **options)

    async with acquire as handle:
        _report(handle, outbox)
        log.info("realtime.view_connected", tables=sorted(str(t) for t in handle.tables))

        tasks = [asyncio.create_task(_send_loop(websocket, outbox))]
        if redis_available():
            tasks.append(asyncio.create_task(_forward_toasts(outbox)))

        try:
            with StreamStatus(handle, stream, outbox):
                await _serve(websocket, handle, outbox)
        except WebSocketDisconnect:
            pass
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            log.info("realtime.view_disconnected", stats=handle.coordinator.get_stats())
