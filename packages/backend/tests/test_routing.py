"""Invalidation routing tests — table → cache-key prefixes."""

import inspect

import pytest

from rollcall.realtime import query_keys as qk
from rollcall.realtime.routing import DEPENDENCY_MAP, dependents_of, resolve
from rollcall.realtime.tables import TableName
from rollcall.services.dashboard_service import DashboardService


def test_every_table_has_prefixes():
    for table in TableName:
        assert resolve(table), f"{table} invalidates nothing"


def test_resolve_is_deterministic():
    assert resolve(TableName.WORKERS) == resolve(TableName.WORKERS)
    assert resolve("workers") == resolve(TableName.WORKERS)


def test_resolve_returns_a_fresh_tuple_of_the_map_entry():
    assert resolve(TableName.ATTENDANCE_EVENTS) == tuple(DEPENDENCY_MAP[TableName.ATTENDANCE_EVENTS])


def test_resolve_unknown_table_is_empty():
    assert resolve("payroll_runs") == ()


def test_resolve_unmapped_table_with_custom_map_is_empty():
    custom = {TableName.WORKERS: ("a",)}
    assert resolve(TableName.DEPARTMENTS, custom) == ()
    assert resolve(TableName.WORKERS, custom) == ("a",)


def test_no_duplicate_prefixes_per_table():
    for table, prefixes in DEPENDENCY_MAP.items():
        assert len(prefixes) == len(set(prefixes)), table


def test_every_mapped_prefix_is_catalogued():
    for prefixes in DEPENDENCY_MAP.values():
        assert set(prefixes) <= qk.ALL_QUERY_KEYS


def test_every_catalogued_prefix_is_invalidated_somewhere():
    for prefix in qk.ALL_QUERY_KEYS:
        assert dependents_of(prefix), f"{prefix} is never invalidated"


def test_dependency_map_is_read_only():
    with pytest.raises(TypeError):
        DEPENDENCY_MAP[TableName.WORKERS] = ()


# ─── Query reads ──────────────────────────────────────────
#
# Every DashboardService read, the prefix it caches under, and every table
# its SQL touches (subqueries and joins included). A change on any of those
# tables must invalidate the prefix.

A = TableName.ATTENDANCE_EVENTS
R = TableName.ATTENDANCE_DAILY_ROLLUPS
M = TableName.WORKER_MAPPINGS
W = TableName.WORKERS
E = TableName.ESTABLISHMENTS
D = TableName.DEPARTMENTS

QUERY_READS = {
    "overview_stats": (qk.OVERVIEW_STATS, {R, M, W, E, D}),
    "recent_activity": (qk.RECENT_ACTIVITY, {W, E, M}),
    "attendance_trend_overview": (qk.ATTENDANCE_TREND_OVERVIEW, {R, M}),
    "worker_profile": (qk.WORKER_PROFILE, {W}),
    "worker_establishment": (qk.WORKER_ESTABLISHMENT, {E, M}),
    "worker_today_attendance": (qk.WORKER_TODAY_ATTENDANCE, {R, A}),
    "worker_attendance_history": (qk.WORKER_ATTENDANCE_HISTORY, {R}),
    "worker_monthly_stats": (qk.WORKER_MONTHLY_STATS, {R}),
    "worker_attendance_trend": (qk.WORKER_ATTENDANCE_TREND, {R}),
    "establishment_workers": (qk.ESTABLISHMENT_WORKERS, {W, M}),
    "establishment_today_attendance": (qk.ESTABLISHMENT_TODAY_ATTENDANCE, {M, R}),
    "establishment_attendance_trend": (qk.ESTABLISHMENT_ATTENDANCE_TREND, {M, R}),
    "establishment_attendance_trend_range": (qk.ESTABLISHMENT_ATTENDANCE_TREND_RANGE, {M, R}),
    "department_establishments": (qk.DEPARTMENT_ESTABLISHMENTS, {E, M, R}),
    "department_stats": (qk.DEPARTMENT_STATS, {D, E, M, R}),
    "department_workers": (qk.DEPARTMENT_WORKERS, {W, M, E}),
    "department_attendance_trend": (qk.DEPARTMENT_ATTENDANCE_TREND, {E, M, R}),
    "department_attendance_trend_range": (qk.DEPARTMENT_ATTENDANCE_TREND_RANGE, {E, M, R}),
    "unmapped_workers": (qk.UNMAPPED_WORKERS, {W, M}),
}

READ_PAIRS = sorted(
    (method, table, prefix)
    for method, (prefix, tables) in QUERY_READS.items()
    for table in tables
)


@pytest.mark.parametrize("method, table, prefix", READ_PAIRS)
def test_query_reads_are_invalidated_by_their_tables(method, table, prefix):
    assert prefix in resolve(table), f"{method} reads {table} but {table} does not invalidate {prefix}"


def test_every_service_read_is_listed():
    reads = {
        name
        for name, member in inspect.getmembers(DashboardService, inspect.iscoroutinefunction)
        if not name.startswith("_")
    }
    assert reads == set(QUERY_READS)


def test_every_catalogued_prefix_has_one_service_read():
    prefixes = [prefix for prefix, _ in QUERY_READS.values()]
    assert sorted(prefixes) == sorted(qk.ALL_QUERY_KEYS)


def test_rollup_change_refreshes_department_present_counts():
    assert qk.DEPARTMENT_ESTABLISHMENTS in resolve(TableName.ATTENDANCE_DAILY_ROLLUPS)


def test_overview_stats_depends_on_every_table():
    assert set(dependents_of(qk.OVERVIEW_STATS)) == set(TableName)
