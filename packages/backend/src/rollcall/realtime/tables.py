"""Tracked tables — the closed set of tables the change stream reports on.

Learn: Centralizing table names as an Enum prevents typos and makes the
dependency map exhaustively checkable. A str Enum compares equal to its
value, so TableName.WORKERS == "workers" and it serialises as plain text.
"""

from enum import Enum
from typing import Iterable


class UnknownTableError(ValueError):
    """Raised when a table name is not one of the tracked tables."""


class TableName(str, Enum):
    ATTENDANCE_EVENTS = "attendance_events"
    ATTENDANCE_DAILY_ROLLUPS = "attendance_daily_rollups"
    WORKER_MAPPINGS = "worker_mappings"
    WORKERS = "workers"
    ESTABLISHMENTS = "establishments"
    DEPARTMENTS = "departments"

    def __str__(self) -> str:
        return self.value


def parse_table(name: "str | TableName") -> TableName:
    """Convert a raw table name into a TableName."""
    try:
        return TableName(name)
    except ValueError:
        raise UnknownTableError(f"Unknown table: {name!r}") from None


def parse_tables(names: Iterable["str | TableName"]) -> tuple[TableName, ...]:
    """Parse and de-duplicate table names, in TableName declaration order.

    Learn: the order is fixed by the enum rather than by the caller so that
    subscribe/unsubscribe sequences are deterministic for the same set.
    """
    requested = {parse_table(name) for name in names}
    return tuple(table for table in TableName if table in requested)


# ─── Dashboard presets ───────────────────────────────────
# Each dashboard kind watches the tables its queries read from.

WORKER_DASHBOARD_TABLES = frozenset({
    TableName.ATTENDANCE_EVENTS,
    TableName.ATTENDANCE_DAILY_ROLLUPS,
    TableName.WORKER_MAPPINGS,
})

ESTABLISHMENT_DASHBOARD_TABLES = WORKER_DASHBOARD_TABLES | {TableName.WORKERS}

DEPARTMENT_DASHBOARD_TABLES = ESTABLISHMENT_DASHBOARD_TABLES | {
    TableName.ESTABLISHMENTS,
}

OVERVIEW_DASHBOARD_TABLES = DEPARTMENT_DASHBOARD_TABLES | {TableName.DEPARTMENTS}

DASHBOARD_PRESETS: dict[str, frozenset[TableName]] = {
    "worker": WORKER_DASHBOARD_TABLES,
    "establishment": ESTABLISHMENT_DASHBOARD_TABLES,
    "department": DEPARTMENT_DASHBOARD_TABLES,
    "overview": OVERVIEW_DASHBOARD_TABLES,
}
