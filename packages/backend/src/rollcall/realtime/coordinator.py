"""Subscription coordinator — one per mounted dashboard view.

Learn: A dashboard says which tables it cares about; the coordinator keeps
exactly one upstream subscription per table for that view and wires each
one to invalidation + toasts:

    change on T → resolve(T) → cache.invalidate(prefix) for each → debouncer.notify(T)

Rules this class enforces:
1. Re-activation is a diff. Tables no longer requested are closed first,
   new tables are opened, tables in both sets are left alone (no
   unsubscribe/resubscribe churn).
2. Activation, re-activation, resubscribe and deactivation of one
   coordinator are serialized by an asyncio.Lock, so a view re-rendering
   quickly can never leave a dangling subscription behind.
3. Each subscription has a `live` flag that is cleared before the upstream
   unsubscribe. A notification the transport had already queued is dropped
   instead of touching a torn-down view.
4. Invalidation always runs before the toast, and a failing toast never
   stops invalidation. A failing invalidate is logged and the remaining
   prefixes are still invalidated.
5. A subscription that fails to open is reported via SubscriptionError
   and listed in `degraded`. It is not retried here; the caller decides (a
   later activate() with the same tables tries again).

Views do not share coordinators. Two dashboards watching the same table each
hold their own upstream subscription, so one change invalidates once per
view. Invalidation is idempotent and the debouncer is process-wide, so the
user still sees one toast.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Protocol

import structlog

from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.routing import resolve
from rollcall.realtime.stream import ChangeStream
from rollcall.realtime.tables import TableName, parse_tables

logger = structlog.get_logger()


class InvalidationTarget(Protocol):
    def invalidate(self, prefix: str) -> Any: ...


class SubscriptionError(Exception):
    """Raised when one or more upstream subscriptions could not be opened."""

    def __init__(self, failures: dict[TableName, BaseException]):
        self.failures = failures
        names = ", ".join(str(t) for t in failures)
        super().__init__(f"Could not subscribe to: {names}")

    @property
    def tables(self) -> list[TableName]:
        return list(self.failures)


@dataclass
class CoordinatorStats:
    events: int = 0
    dropped: int = 0
    invalidations: int = 0
    invalidation_errors: int = 0
    notification_errors: int = 0


@dataclass(eq=False)
class _TableSubscription:
    table: TableName
    handle: Any = None
    live: bool = True


@dataclass(eq=False)
class RealtimeHandle:
    """What activate() hands back to the view."""

    coordinator: "SubscriptionCoordinator" = field(repr=False)

    @property
    def tables(self) -> frozenset[TableName]:
        return self.coordinator.tables

    @property
    def active(self) -> bool:
        return self.coordinator.active

    @property
    def degraded(self) -> frozenset[TableName]:
        """Requested tables with no live subscription. Their data may go stale."""
        return self.coordinator.degraded

    @property
    def connected(self) -> bool:
        """Whether the transport is currently delivering changes."""
        return self.coordinator.stream.connected

    async def update(self, tables: Iterable["TableName | str"]) -> "RealtimeHandle":
        return await self.coordinator.activate(tables)

    async def deactivate(self) -> None:
        await self.coordinator.deactivate()

    def refresh(self) -> int:
        return self.coordinator.refresh()


class SubscriptionCoordinator:
    """Owns one view's SubscriptionSet."""

    def __init__(
        self,
        stream: ChangeStream,
        cache: InvalidationTarget,
        debouncer: Optional[NotificationDebouncer] = None,
        resolver: Callable[[TableName], tuple[str, ...]] = resolve,
        view: str = "dashboard",
    ):
        self.stream = stream
        self.cache = cache
        self.debouncer = debouncer
        self._resolve = resolver
        self.view = view
        self._subscriptions: dict[TableName, _TableSubscription] = {}
        self._degraded: frozenset[TableName] = frozenset()
        self._closing = False
        self._lock = asyncio.Lock()
        self._handle = RealtimeHandle(self)
        self.stats = CoordinatorStats()
        self.log = logger.bind(view=view)

    @property
    def tables(self) -> frozenset[TableName]:
        return frozenset(self._subscriptions)

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    @property
    def handle(self) -> RealtimeHandle:
        return self._handle

    @property
    def degraded(self) -> frozenset[TableName]:
        return self._degraded

    # ─── Activation ───────────────────────────────────────

    async def activate(self, tables: Iterable["TableName | str"]) -> RealtimeHandle:
        """Make the live subscription set equal to `tables`.

        Raises SubscriptionError (after every other table has been handled)
        if any new subscription failed to open. UnknownTableError is raised
        before anything changes if a name is not a tracked table.
        """
        requested = parse_tables(tables)

        async with self._lock:
            for table in [t for t in self._subscriptions if t not in requested]:
                await self._close(table)

            failures: dict[TableName, BaseException] = {}
            for table in requested:
                if table in self._subscriptions:
                    continue
                try:
                    await self._open(table)
                except Exception as e:
                    failures[table] = e
                    self.log.error("realtime.subscribe_failed", table=str(table), error=str(e))
            self._degraded = frozenset(failures)

        if failures:
            raise SubscriptionError(failures)
        return self._handle

    async def deactivate(self) -> None:
        """Close every subscription. Safe to call repeatedly.

        Learn: an activate() may still hold the lock when this is called.
        While the closing flag is set nothing is dispatched, including
        changes on subscriptions that activate() is opening right now.
        """
        self._closing = True
        for sub in self._subscriptions.values():
            sub.live = False
        try:
            async with self._lock:
                for table in list(self._subscriptions):
                    await self._close(table)
                self._degraded = frozenset()
        finally:
            self._closing = False

    async def resubscribe(self) -> None:
        """Replace every live subscription with a fresh one.

        Learn: used after a transport reconnect that dropped registrations.
        Each table ends up with exactly one registration: the old handle is
        retired before the new one opens.
        """
        async with self._lock:
            failures: dict[TableName, BaseException] = {}
            for table in list(self._subscriptions):
                await self._close(table)
                try:
                    await self._open(table)
                except Exception as e:
                    failures[table] = e
                    self.log.error("realtime.resubscribe_failed", table=str(table), error=str(e))
            self._degraded = self._degraded | frozenset(failures)
        if failures:
            raise SubscriptionError(failures)

    async def _open(self, table: TableName) -> None:
        sub = _TableSubscription(table=table, live=not self._closing)
        sub.handle = await self.stream.subscribe(table, lambda: self._dispatch(sub))
        self._subscriptions[table] = sub
        self.log.info("realtime.subscribed", table=str(table))

    async def _close(self, table: TableName) -> None:
        sub = self._subscriptions.pop(table)
        sub.live = False
        try:
            await self.stream.unsubscribe(sub.handle)
        except Exception as e:
            self.log.warning("realtime.unsubscribe_failed", table=str(table), error=str(e))
        self.log.info("realtime.unsubscribed", table=str(table))

    # ─── Change dispatch ──────────────────────────────────

    def _dispatch(self, sub: _TableSubscription) -> None:
        """Handle one change notification for one table. Never raises."""
        if not sub.live or self._closing:
            self.stats.dropped += 1
            self.log.debug("realtime.event_dropped", table=str(sub.table))
            return

        self.stats.events += 1
        for prefix in self._resolve(sub.table):
            try:
                self.cache.invalidate(prefix)
                self.stats.invalidations += 1
            except Exception:
                self.stats.invalidation_errors += 1
                self.log.exception(
                    "realtime.invalidate_failed", table=str(sub.table), prefix=prefix
                )

        if self.debouncer is None or not sub.live or self._closing:
            return
        try:
            self.debouncer.notify(sub.table)
        except Exception:
            self.stats.notification_errors += 1
            self.log.exception("realtime.notify_failed", table=str(sub.table))

    def refresh(self) -> int:
        """Invalidate every prefix this view depends on. Returns the count.

        Used when the transport comes back after a gap: changes made while
        it was down were never delivered.
        """
        prefixes = sorted({p for table in self._subscriptions for p in self._resolve(table)})
        for prefix in prefixes:
            try:
                self.cache.invalidate(prefix)
            except Exception:
                self.stats.invalidation_errors += 1
                self.log.exception("realtime.invalidate_failed", prefix=prefix)
        return len(prefixes)

    def get_stats(self) -> dict:
        return {
            "view": self.view,
            "tables": sorted(str(t) for t in self._subscriptions),
            "degraded": sorted(str(t) for t in self._degraded),
            "events": self.stats.events,
            "dropped": self.stats.dropped,
            "invalidations": self.stats.invalidations,
            "invalidation_errors": self.stats.invalidation_errors,
            "notification_errors": self.stats.notification_errors,
        }
