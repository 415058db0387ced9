"""Query-key catalogue — every cache-key prefix the dashboards populate.

Learn: A cached result is stored under a tuple key whose first element is
one of these prefixes, e.g. (WORKER_TODAY_ATTENDANCE, worker_id, date).
Invalidating the prefix drops the whole family at once, whatever the
parameters. The startup check in realtime.validation compares this
catalogue against the table dependency map, so a new prefix that no
table invalidates fails fast instead of serving stale data forever.
"""

# ─── Worker dashboard ────────────────────────────────────

WORKER_PROFILE = "worker-profile"
WORKER_ESTABLISHMENT = "worker-establishment"
WORKER_TODAY_ATTENDANCE = "worker-today-attendance"
WORKER_ATTENDANCE_HISTORY = "worker-attendance-history"
WORKER_MONTHLY_STATS = "worker-monthly-stats"
WORKER_ATTENDANCE_TREND = "worker-attendance-trend"

# ─── Establishment dashboard ─────────────────────────────

ESTABLISHMENT_WORKERS = "establishment-workers"
ESTABLISHMENT_TODAY_ATTENDANCE = "establishment-today-attendance"
ESTABLISHMENT_ATTENDANCE_TREND = "establishment-attendance-trend"
ESTABLISHMENT_ATTENDANCE_TREND_RANGE = "establishment-attendance-trend-range"

# ─── Department dashboard ────────────────────────────────

DEPARTMENT_ESTABLISHMENTS = "department-establishments"
DEPARTMENT_STATS = "department-stats"
DEPARTMENT_WORKERS = "department-workers"
DEPARTMENT_ATTENDANCE_TREND = "department-attendance-trend"
DEPARTMENT_ATTENDANCE_TREND_RANGE = "department-attendance-trend-range"
UNMAPPED_WORKERS = "unmapped-workers"

# ─── Overview dashboard ──────────────────────────────────

OVERVIEW_STATS = "overview-stats"
RECENT_ACTIVITY = "recent-activity"
ATTENDANCE_TREND_OVERVIEW = "attendance-trend-overview"


ALL_QUERY_KEYS: frozenset[str] = frozenset({
    WORKER_PROFILE,
    WORKER_ESTABLISHMENT,
    WORKER_TODAY_ATTENDANCE,
    WORKER_ATTENDANCE_HISTORY,
    WORKER_MONTHLY_STATS,
    WORKER_ATTENDANCE_TREND,
    ESTABLISHMENT_WORKERS,
    ESTABLISHMENT_TODAY_ATTENDANCE,
    ESTABLISHMENT_ATTENDANCE_TREND,
    ESTABLISHMENT_ATTENDANCE_TREND_RANGE,
    DEPARTMENT_ESTABLISHMENTS,
    DEPARTMENT_STATS,
    DEPARTMENT_WORKERS,
    DEPARTMENT_ATTENDANCE_TREND,
    DEPARTMENT_ATTENDANCE_TREND_RANGE,
    UNMAPPED_WORKERS,
    OVERVIEW_STATS,
    RECENT_ACTIVITY,
    ATTENDANCE_TREND_OVERVIEW,
})
