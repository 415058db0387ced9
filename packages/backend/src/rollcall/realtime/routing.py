"""Invalidation routing — which cached query families depend on which table.

Learn: This is a hand-maintained dependency graph. When a row in table T
changes, every cached result built from T must be dropped, so
resolve(T) has to list every prefix whose query reads T. Missing a prefix
here means a dashboard silently shows stale data, which is why the map is
checked against the query-key catalogue at startup (see validation.py)
and exhaustively in the tests.

resolve() is pure: same map in, same tuple out, no side effects.
"""

from types import MappingProxyType
from typing import Mapping

from rollcall.realtime import query_keys as qk
from rollcall.realtime.tables import TableName

DependencyMap = Mapping[TableName, tuple[str, ...]]


DEPENDENCY_MAP: DependencyMap = MappingProxyType({
    TableName.ATTENDANCE_EVENTS: (
        qk.WORKER_TODAY_ATTENDANCE,
        qk.WORKER_ATTENDANCE_HISTORY,
        qk.ESTABLISHMENT_TODAY_ATTENDANCE,
        qk.DEPARTMENT_STATS,
        qk.OVERVIEW_STATS,
        qk.RECENT_ACTIVITY,
    ),
    TableName.ATTENDANCE_DAILY_ROLLUPS: (
        qk.WORKER_TODAY_ATTENDANCE,
        qk.WORKER_ATTENDANCE_HISTORY,
        qk.WORKER_MONTHLY_STATS,
        qk.WORKER_ATTENDANCE_TREND,
        qk.ESTABLISHMENT_TODAY_ATTENDANCE,
        qk.ESTABLISHMENT_ATTENDANCE_TREND,
        qk.ESTABLISHMENT_ATTENDANCE_TREND_RANGE,
        qk.DEPARTMENT_ESTABLISHMENTS,
        qk.DEPARTMENT_STATS,
        qk.DEPARTMENT_ATTENDANCE_TREND,
        qk.DEPARTMENT_ATTENDANCE_TREND_RANGE,
        qk.OVERVIEW_STATS,
        qk.ATTENDANCE_TREND_OVERVIEW,
    ),
    TableName.WORKER_MAPPINGS: (
        qk.WORKER_ESTABLISHMENT,
        qk.ESTABLISHMENT_WORKERS,
        qk.ESTABLISHMENT_TODAY_ATTENDANCE,
        qk.ESTABLISHMENT_ATTENDANCE_TREND,
        qk.ESTABLISHMENT_ATTENDANCE_TREND_RANGE,
        qk.UNMAPPED_WORKERS,
        qk.DEPARTMENT_ESTABLISHMENTS,
        qk.DEPARTMENT_WORKERS,
        qk.DEPARTMENT_STATS,
        qk.DEPARTMENT_ATTENDANCE_TREND,
        qk.DEPARTMENT_ATTENDANCE_TREND_RANGE,
        qk.OVERVIEW_STATS,
        qk.RECENT_ACTIVITY,
        qk.ATTENDANCE_TREND_OVERVIEW,
    ),
    TableName.WORKERS: (
        qk.WORKER_PROFILE,
        qk.ESTABLISHMENT_WORKERS,
        qk.UNMAPPED_WORKERS,
        qk.DEPARTMENT_WORKERS,
        qk.OVERVIEW_STATS,
        qk.RECENT_ACTIVITY,
    ),
    TableName.ESTABLISHMENTS: (
        qk.WORKER_ESTABLISHMENT,
        qk.DEPARTMENT_ESTABLISHMENTS,
        qk.DEPARTMENT_STATS,
        qk.DEPARTMENT_WORKERS,
        qk.DEPARTMENT_ATTENDANCE_TREND,
        qk.DEPARTMENT_ATTENDANCE_TREND_RANGE,
        qk.OVERVIEW_STATS,
        qk.RECENT_ACTIVITY,
    ),
    TableName.DEPARTMENTS: (
        qk.DEPARTMENT_STATS,
        qk.OVERVIEW_STATS,
    ),
})


def resolve(
    table: "TableName | str",
    dependency_map: DependencyMap = DEPENDENCY_MAP,
) -> tuple[str, ...]:
    """Return the cache-key prefixes invalidated by a change on `table`.

    Unknown or unmapped tables resolve to an empty tuple rather than raising:
    a change nobody depends on is a no-op.
    """
    try:
        table = TableName(table)
    except ValueError:
        return ()
    return tuple(dependency_map.get(table, ()))


def dependents_of(prefix: str, dependency_map: DependencyMap = DEPENDENCY_MAP) -> list[TableName]:
    """Reverse lookup: which tables invalidate `prefix`."""
    return [table for table, prefixes in dependency_map.items() if prefix in prefixes]
