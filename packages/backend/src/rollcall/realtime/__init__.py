"""Realtime cache coherence — PG change stream → cache invalidation → toasts.

Learn: Events flow one way:
1. PostgreSQL trigger → pg_notify('<prefix>:<table>') → PostgresChangeStream
2. SubscriptionCoordinator (one per view) → resolve(table) → QueryCache.invalidate
3. NotificationDebouncer (one per process) → Redis PUBLISH → WebSocket → toast

Only step 3 is rate limited. Invalidation is never skipped to save a toast.
"""

from rollcall.realtime.coordinator import (
    RealtimeHandle,
    SubscriptionCoordinator,
    SubscriptionError,
)
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.routing import DEPENDENCY_MAP, resolve
from rollcall.realtime.tables import TableName, UnknownTableError
from rollcall.realtime.validation import RealtimeConfigError, validate_realtime_config
from rollcall.realtime.view import use_dashboard_realtime, use_realtime

__all__ = [
    "DEPENDENCY_MAP",
    "NotificationDebouncer",
    "RealtimeConfigError",
    "RealtimeHandle",
    "SubscriptionCoordinator",
    "SubscriptionError",
    "TableName",
    "UnknownTableError",
    "resolve",
    "use_dashboard_realtime",
    "use_realtime",
    "validate_realtime_config",
]
