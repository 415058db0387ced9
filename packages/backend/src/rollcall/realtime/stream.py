"""Change stream — per-table "something changed" notifications.

Learn: A migration installs an AFTER INSERT/UPDATE/DELETE trigger on every
tracked table that runs pg_notify('<prefix>:<table>', ...). Here we LISTEN
on those channels with asyncpg. The payload is ignored: consumers
treat every notification as "anything in this table may have changed".

asyncpg calls listeners synchronously on the event loop, so the callback
we register must not block. It just calls the subscriber's on_change().

PG NOTIFY is best-effort: notifications sent while the LISTEN connection
is down are lost. When the connection terminates, disconnect listeners are
told at once (mounted views are stale from here on), we reconnect with backoff
and re-register every live listener exactly once on the new connection,
then tell reconnect listeners so they can drop anything that may have
changed in the gap.
"""

import asyncio
import itertools
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import asyncpg
import structlog

from rollcall.realtime.tables import TableName

logger = structlog.get_logger()

ChangeCallback = Callable[[], None]
StatusListener = Callable[[], None]


class ChangeStreamError(Exception):
    """Raised when the transport cannot open a subscription."""


@dataclass(eq=False)
class SubscriptionHandle:
    """One live registration for one table. Identity-compared."""

    table: TableName
    channel: str
    id: int
    callback: Callable = field(repr=False, default=None)


class ChangeStream(ABC):
    """Abstract transport delivering payload-less table change notifications.

    Learn: Besides per-table subscriptions a stream reports its own health.
    Disconnect listeners run when delivery stops (views are stale from then
    on), reconnect listeners run once it resumes.
    """

    def __init__(self):
        self._reconnect_listeners: list[StatusListener] = []
        self._disconnect_listeners: list[StatusListener] = []

    @abstractmethod
    async def subscribe(self, table: TableName, on_change: ChangeCallback) -> SubscriptionHandle:
        """Start delivering changes on `table` to `on_change`."""

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery for `handle`. Unknown or closed handles are a no-op."""

    @property
    def connected(self) -> bool:
        return True

    def add_reconnect_listener(self, listener: StatusListener) -> None:
        self._reconnect_listeners.append(listener)

    def remove_reconnect_listener(self, listener: StatusListener) -> None:
        if listener in self._reconnect_listeners:
            self._reconnect_listeners.remove(listener)

    def add_disconnect_listener(self, listener: StatusListener) -> None:
        self._disconnect_listeners.append(listener)

    def remove_disconnect_listener(self, listener: StatusListener) -> None:
        if listener in self._disconnect_listeners:
            self._disconnect_listeners.remove(listener)

    def _fire(self, listeners: list[StatusListener], event: str) -> None:
        for listener in list(listeners):
            try:
                listener()
            except Exception:
                logger.exception("realtime.stream_listener_failed", stream_event=event)


class UnavailableChangeStream(ChangeStream):
    """Stand-in when realtime is disabled or the LISTEN connection never came up.

    Every subscribe fails, so views report themselves degraded.
    """

    @property
    def connected(self) -> bool:
        return False

    async def subscribe(self, table: TableName, on_change: ChangeCallback) -> SubscriptionHandle:
        raise ChangeStreamError("Realtime change stream is not running")

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        return None


class PostgresChangeStream(ChangeStream):
    """LISTEN/NOTIFY transport over a single dedicated asyncpg connection."""

    def __init__(
        self,
        dsn: str,
        channel_prefix: str = "rollcall:changes",
        connect: Callable[[str], Awaitable[asyncpg.Connection]] = asyncpg.connect,
        initial_retry_delay: float = 5.0,
        max_retry_delay: float = 60.0,
    ):
        super().__init__()
        self.dsn = dsn
        self.channel_prefix = channel_prefix
        self._connect = connect
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self._conn: Optional[asyncpg.Connection] = None
        self._handles: dict[int, SubscriptionHandle] = {}
        self._ids = itertools.count(1)
        self._reconnect_task: Optional[asyncio.Task] = None
        self._running = False
        self.reconnects = 0
        self.reconnect_failures = 0

    # ─── Lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        """Open the LISTEN connection."""
        self._running = True
        self._conn = await self._open_connection()
        logger.info("realtime.stream_connected", channel_prefix=self.channel_prefix)

    async def stop(self) -> None:
        """Close the connection and forget every subscription."""
        self._running = False
        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None
        self._handles.clear()
        if self._conn is not None and not self._conn.is_closed():
            await self._conn.close()
        self._conn = None
        logger.info("realtime.stream_stopped")

    @property
    def connected(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    def channel_for(self, table: TableName) -> str:
        return f"{self.channel_prefix}:{TableName(table).value}"

    # ─── Subscriptions ────────────────────────────────────

    async def subscribe(self, table: TableName, on_change: ChangeCallback) -> SubscriptionHandle:
        if not self.connected:
            raise ChangeStreamError(f"Change stream not connected; cannot subscribe to {table}")

        def _listener(conn, pid, channel, payload):
            on_change()

        handle = SubscriptionHandle(
            table=TableName(table),
            channel=self.channel_for(table),
            id=next(self._ids),
            callback=_listener,
        )
        try:
            await self._conn.add_listener(handle.channel, _listener)
        except (asyncpg.PostgresError, OSError) as e:
            raise ChangeStreamError(f"LISTEN {handle.channel} failed: {e}") from e

        self._handles[handle.id] = handle
        logger.debug("realtime.listen", channel=handle.channel, handle_id=handle.id)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if self._handles.pop(handle.id, None) is None:
            return
        if self.connected:
            await self._conn.remove_listener(handle.channel, handle.callback)
        logger.debug("realtime.unlisten", channel=handle.channel, handle_id=handle.id)

    def subscription_count(self) -> int:
        return len(self._handles)

    # ─── Reconnection ─────────────────────────────────────

    async def _open_connection(self) -> asyncpg.Connection:
        conn = await self._connect(self.dsn)
        conn.add_termination_listener(self._on_terminated)
        return conn

    def _on_terminated(self, conn) -> None:
        if not self._running or conn is not self._conn:
            return
        logger.warning("realtime.stream_disconnected", subscriptions=len(self._handles))
        self._fire(self._disconnect_listeners, "disconnected")
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """Retry until reconnected or stopped. Only cancellation ends it early."""
        retry_delay = self.initial_retry_delay
        while self._running:
            # Backoff: 5s → 10s → 20s → 60s max, with ±25% jitter
            jitter = retry_delay * random.uniform(-0.25, 0.25)
            await asyncio.sleep(retry_delay + jitter)
            try:
                await self.reconnect()
                return
            except Exception as e:
                self.reconnect_failures += 1
                logger.warning(
                    "realtime.reconnect_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    retry_in=retry_delay,
                )
                retry_delay = min(retry_delay * 2, self.max_retry_delay)

    async def reconnect(self) -> None:
        """Open a fresh connection and move every live listener onto it.

        If re-listening fails the new connection is closed and the old one
        stays current, so the next attempt starts clean.
        """
        conn = await self._open_connection()
        try:
            for handle in list(self._handles.values()):
                await conn.add_listener(handle.channel, handle.callback)
        except BaseException:
            if not conn.is_closed():
                conn.terminate()
            raise

        old, self._conn = self._conn, conn
        if old is not None and not old.is_closed():
            old.terminate()

        self.reconnects += 1
        logger.info("realtime.stream_reconnected", subscriptions=len(self._handles))
        self._fire(self._reconnect_listeners, "reconnected")
