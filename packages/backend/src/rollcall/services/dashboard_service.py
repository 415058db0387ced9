"""Dashboard service — cached read models for the four dashboards.

Learn: Every public method builds one result and stores it in the
QueryCache under (PREFIX, *params). The prefixes come from
realtime.query_keys, and realtime.routing says which table changes
invalidate which prefix. When you add a query here that reads a new table,
add its prefix to the catalogue and to DEPENDENCY_MAP, or startup
validation will refuse to boot.
"""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.cache.query_cache import QueryCache
from rollcall.db.models import (
    AttendanceDailyRollup,
    AttendanceEvent,
    AttendanceStatus,
    Department,
    Establishment,
    Worker,
    WorkerMapping,
)
from rollcall.realtime import query_keys as qk


class NotFoundError(Exception):
    """Raised when the requested worker/establishment/department is missing."""


def _rate(attended: int, expected: int) -> int:
    return round(attended / expected * 100) if expected else 0


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _worker_dict(w: Worker) -> dict[str, Any]:
    return {
        "id": str(w.id),
        "worker_id": w.worker_id,
        "first_name": w.first_name,
        "last_name": w.last_name,
        "district": w.district,
        "state": w.state,
        "phone": w.phone,
        "is_active": w.is_active,
    }


def _establishment_dict(e: Establishment) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "code": e.code,
        "name": e.name,
        "district": e.district,
        "department_id": str(e.department_id),
        "is_active": e.is_active,
        "is_approved": e.is_approved,
    }


def _rollup_dict(r: AttendanceDailyRollup) -> dict[str, Any]:
    return {
        "attendance_date": r.attendance_date.isoformat(),
        "status": AttendanceStatus(r.status).value,
        "first_checkin_at": r.first_checkin_at.isoformat() if r.first_checkin_at else None,
        "last_checkout_at": r.last_checkout_at.isoformat() if r.last_checkout_at else None,
        "total_hours": float(r.total_hours) if r.total_hours is not None else None,
    }


class DashboardService:
    """Business logic for dashboard reads, backed by the query cache."""

    def __init__(self, db: AsyncSession, cache: QueryCache):
        self.db = db
        self.cache = cache

    async def _cached(self, key: tuple, compute: Callable[[], Awaitable[Any]]) -> Any:
        return await self.cache.fetch(key, compute)

    async def _count(self, *criteria) -> int:
        model = criteria[0]
        query = select(func.count()).select_from(model)
        for clause in criteria[1:]:
            query = query.where(clause)
        return (await self.db.execute(query)).scalar_one()

    async def _status_counts(self, *criteria) -> dict[str, int]:
        query = select(AttendanceDailyRollup.status, func.count()).group_by(
            AttendanceDailyRollup.status
        )
        for clause in criteria:
            query = query.where(clause)
        rows = (await self.db.execute(query)).all()
        counts = {s.value: 0 for s in AttendanceStatus}
        for status, count in rows:
            counts[AttendanceStatus(status).value] = count
        return counts

    async def _trend(self, start: date, end: date, expected: int, *criteria) -> list[dict]:
        """Per-day present/partial/absent between start and end inclusive."""
        query = (
            select(AttendanceDailyRollup.attendance_date, AttendanceDailyRollup.status, func.count())
            .where(AttendanceDailyRollup.attendance_date.between(start, end))
            .group_by(AttendanceDailyRollup.attendance_date, AttendanceDailyRollup.status)
        )
        for clause in criteria:
            query = query.where(clause)
        by_date: dict[date, dict[str, int]] = {}
        for day, status, count in (await self.db.execute(query)).all():
            by_date.setdefault(day, {})[AttendanceStatus(status).value] = count

        points = []
        day = start
        while day <= end:
            counts = by_date.get(day, {})
            present = counts.get("PRESENT", 0)
            partial = counts.get("PARTIAL", 0)
            points.append({
                "date": day.isoformat(),
                "present": present,
                "partial": partial,
                "absent": max(0, expected - present - partial),
                "rate": _rate(present + partial, expected),
            })
            day += timedelta(days=1)
        return points

    async def _active_mapped_count(self, *criteria) -> int:
        query = select(func.count()).select_from(WorkerMapping).where(WorkerMapping.is_active)
        for clause in criteria:
            query = query.where(clause)
        return (await self.db.execute(query)).scalar_one()

    # ─── Overview dashboard ─────────────────────────────

    async def overview_stats(self, today: Optional[date] = None) -> dict:
        today = today or date.today()

        async def compute():
            mapped = await self._active_mapped_count()
            counts = await self._status_counts(AttendanceDailyRollup.attendance_date == today)
            present, partial = counts["PRESENT"], counts["PARTIAL"]
            return {
                "total_departments": await self._count(Department),
                "active_departments": await self._count(Department, Department.is_active),
                "total_establishments": await self._count(Establishment),
                "active_establishments": await self._count(Establishment, Establishment.is_active),
                "total_workers": await self._count(Worker),
                "active_workers": await self._count(Worker, Worker.is_active),
                "mapped_workers": mapped,
                "today_present": present,
                "today_partial": partial,
                "today_absent": max(0, mapped - present - partial),
                "attendance_rate": _rate(present + partial, mapped),
            }

        return await self._cached((qk.OVERVIEW_STATS, today.isoformat()), compute)

    async def recent_activity(self, limit: int = 10) -> list[dict]:
        async def compute():
            activities: list[dict] = []

            workers = await self.db.execute(
                select(Worker).order_by(Worker.created_at.desc()).limit(5)
            )
            for w in workers.scalars():
                activities.append({
                    "id": f"worker-{w.id}",
                    "type": "worker_registered",
                    "description": f"{w.first_name} {w.last_name} registered",
                    "timestamp": w.created_at,
                })

            establishments = await self.db.execute(
                select(Establishment).order_by(Establishment.created_at.desc()).limit(5)
            )
            for e in establishments.scalars():
                activities.append({
                    "id": f"est-{e.id}",
                    "type": "establishment_registered",
                    "description": f"{e.name} establishment registered",
                    "timestamp": e.created_at,
                })

            mappings = await self.db.execute(
                select(WorkerMapping.id, WorkerMapping.mapped_at, Worker.first_name,
                       Worker.last_name, Establishment.name)
                .join(Worker, Worker.id == WorkerMapping.worker_id)
                .join(Establishment, Establishment.id == WorkerMapping.establishment_id)
                .where(WorkerMapping.is_active)
                .order_by(WorkerMapping.mapped_at.desc())
                .limit(5)
            )
            for mapping_id, mapped_at, first, last, est_name in mappings.all():
                activities.append({
                    "id": f"map-{mapping_id}",
                    "type": "worker_mapped",
                    "description": f"{first} {last} mapped to {est_name}",
                    "timestamp": mapped_at,
                })

            activities.sort(key=lambda a: a["timestamp"], reverse=True)
            for a in activities:
                a["timestamp"] = a["timestamp"].isoformat()
            return activities[:limit]

        return await self._cached((qk.RECENT_ACTIVITY, limit), compute)

    async def attendance_trend_overview(self, days: int = 7, today: Optional[date] = None) -> list[dict]:
        today = today or date.today()

        async def compute():
            expected = await self._active_mapped_count()
            return await self._trend(today - timedelta(days=days), today, expected)

        return await self._cached((qk.ATTENDANCE_TREND_OVERVIEW, days, today.isoformat()), compute)

    # ─── Worker dashboard ───────────────────────────────

    async def worker_profile(self, worker_id: uuid.UUID) -> dict:
        async def compute():
            worker = await self.db.get(Worker, worker_id)
            if worker is None:
                raise NotFoundError(f"Worker {worker_id} not found")
            return _worker_dict(worker)

        return await self._cached((qk.WORKER_PROFILE, str(worker_id)), compute)

    async def worker_establishment(self, worker_id: uuid.UUID) -> Optional[dict]:
        async def compute():
            result = await self.db.execute(
                select(Establishment)
                .join(WorkerMapping, WorkerMapping.establishment_id == Establishment.id)
                .where(WorkerMapping.worker_id == worker_id, WorkerMapping.is_active)
            )
            establishment = result.scalar_one_or_none()
            return _establishment_dict(establishment) if establishment else None

        return await self._cached((qk.WORKER_ESTABLISHMENT, str(worker_id)), compute)

    async def worker_today_attendance(self, worker_id: uuid.UUID, today: Optional[date] = None) -> dict:
        today = today or date.today()

        async def compute():
            rollup = (await self.db.execute(
                select(AttendanceDailyRollup).where(
                    AttendanceDailyRollup.worker_id == worker_id,
                    AttendanceDailyRollup.attendance_date == today,
                )
            )).scalar_one_or_none()
            start, end = _day_bounds(today)
            events = (await self.db.execute(
                select(AttendanceEvent)
                .where(
                    AttendanceEvent.worker_id == worker_id,
                    AttendanceEvent.occurred_at >= start,
                    AttendanceEvent.occurred_at < end,
                )
                .order_by(AttendanceEvent.occurred_at)
            )).scalars()
            return {
                "date": today.isoformat(),
                "rollup": _rollup_dict(rollup) if rollup else None,
                "events": [
                    {"event_type": e.event_type.value, "occurred_at": e.occurred_at.isoformat()}
                    for e in events
                ],
            }

        return await self._cached(
            (qk.WORKER_TODAY_ATTENDANCE, str(worker_id), today.isoformat()), compute
        )

    async def worker_attendance_history(self, worker_id: uuid.UUID, start: date, end: date) -> list[dict]:
        async def compute():
            result = await self.db.execute(
                select(AttendanceDailyRollup)
                .where(
                    AttendanceDailyRollup.worker_id == worker_id,
                    AttendanceDailyRollup.attendance_date.between(start, end),
                )
                .order_by(AttendanceDailyRollup.attendance_date.desc())
            )
            return [_rollup_dict(r) for r in result.scalars()]

        return await self._cached(
            (qk.WORKER_ATTENDANCE_HISTORY, str(worker_id), start.isoformat(), end.isoformat()),
            compute,
        )

    async def worker_monthly_stats(self, worker_id: uuid.UUID, today: Optional[date] = None) -> dict:
        today = today or date.today()
        month_start = today.replace(day=1)

        async def compute():
            in_month = and_(
                AttendanceDailyRollup.worker_id == worker_id,
                AttendanceDailyRollup.attendance_date.between(month_start, today),
            )
            counts = await self._status_counts(in_month)
            hours = (await self.db.execute(
                select(func.coalesce(func.sum(AttendanceDailyRollup.total_hours), 0)).where(in_month)
            )).scalar_one()
            return {
                "month": month_start.strftime("%Y-%m"),
                "present_days": counts["PRESENT"],
                "partial_days": counts["PARTIAL"],
                "absent_days": counts["ABSENT"],
                "total_hours": float(hours),
            }

        return await self._cached(
            (qk.WORKER_MONTHLY_STATS, str(worker_id), month_start.isoformat()), compute
        )

    async def worker_attendance_trend(self, worker_id: uuid.UUID, days: int = 30,
                                      today: Optional[date] = None) -> list[dict]:
        today = today or date.today()

        async def compute():
            return await self._trend(
                today - timedelta(days=days), today, 1,
                AttendanceDailyRollup.worker_id == worker_id,
            )

        return await self._cached(
            (qk.WORKER_ATTENDANCE_TREND, str(worker_id), days, today.isoformat()), compute
        )

    # ─── Establishment dashboard ────────────────────────

    async def establishment_workers(self, establishment_id: uuid.UUID) -> list[dict]:
        async def compute():
            result = await self.db.execute(
                select(Worker, WorkerMapping.mapped_at)
                .join(WorkerMapping, WorkerMapping.worker_id == Worker.id)
                .where(
                    WorkerMapping.establishment_id == establishment_id,
                    WorkerMapping.is_active,
                )
                .order_by(Worker.first_name, Worker.last_name)
            )
            return [
                {**_worker_dict(w), "mapped_at": mapped_at.isoformat()}
                for w, mapped_at in result.all()
            ]

        return await self._cached((qk.ESTABLISHMENT_WORKERS, str(establishment_id)), compute)

    async def establishment_today_attendance(self, establishment_id: uuid.UUID,
                                             today: Optional[date] = None) -> dict:
        today = today or date.today()

        async def compute():
            mapped = await self._active_mapped_count(
                WorkerMapping.establishment_id == establishment_id
            )
            counts = await self._status_counts(
                AttendanceDailyRollup.establishment_id == establishment_id,
                AttendanceDailyRollup.attendance_date == today,
            )
            present, partial = counts["PRESENT"], counts["PARTIAL"]
            return {
                "date": today.isoformat(),
                "total_workers": mapped,
                "present": present,
                "partial": partial,
                "absent": max(0, mapped - present - partial),
                "attendance_rate": _rate(present + partial, mapped),
            }

        return await self._cached(
            (qk.ESTABLISHMENT_TODAY_ATTENDANCE, str(establishment_id), today.isoformat()), compute
        )

    async def establishment_attendance_trend(self, establishment_id: uuid.UUID, days: int = 7,
                                             today: Optional[date] = None) -> list[dict]:
        today = today or date.today()

        async def compute():
            expected = await self._active_mapped_count(
                WorkerMapping.establishment_id == establishment_id
            )
            return await self._trend(
                today - timedelta(days=days), today, expected,
                AttendanceDailyRollup.establishment_id == establishment_id,
            )

        return await self._cached(
            (qk.ESTABLISHMENT_ATTENDANCE_TREND, str(establishment_id), days, today.isoformat()),
            compute,
        )

    async def establishment_attendance_trend_range(self, establishment_id: uuid.UUID,
                                                   start: date, end: date) -> list[dict]:
        async def compute():
            expected = await self._active_mapped_count(
                WorkerMapping.establishment_id == establishment_id
            )
            return await self._trend(
                start, end, expected,
                AttendanceDailyRollup.establishment_id == establishment_id,
            )

        return await self._cached(
            (qk.ESTABLISHMENT_ATTENDANCE_TREND_RANGE, str(establishment_id),
             start.isoformat(), end.isoformat()),
            compute,
        )

    # ─── Department dashboard ───────────────────────────

    def _in_department(self, department_id: uuid.UUID):
        return AttendanceDailyRollup.establishment_id.in_(
            select(Establishment.id).where(Establishment.department_id == department_id)
        )

    def _mapped_in_department(self, department_id: uuid.UUID):
        return WorkerMapping.establishment_id.in_(
            select(Establishment.id).where(Establishment.department_id == department_id)
        )

    async def department_establishments(self, department_id: uuid.UUID,
                                        today: Optional[date] = None) -> list[dict]:
        today = today or date.today()

        async def compute():
            establishments = (await self.db.execute(
                select(Establishment)
                .where(Establishment.department_id == department_id)
                .order_by(Establishment.name)
            )).scalars().all()
            workers = dict((await self.db.execute(
                select(WorkerMapping.establishment_id, func.count())
                .where(WorkerMapping.is_active, self._mapped_in_department(department_id))
                .group_by(WorkerMapping.establishment_id)
            )).all())
            present = dict((await self.db.execute(
                select(AttendanceDailyRollup.establishment_id, func.count())
                .where(
                    self._in_department(department_id),
                    AttendanceDailyRollup.attendance_date == today,
                    AttendanceDailyRollup.status.in_(
                        [AttendanceStatus.PRESENT, AttendanceStatus.PARTIAL]
                    ),
                )
                .group_by(AttendanceDailyRollup.establishment_id)
            )).all())
            return [
                {
                    **_establishment_dict(e),
                    "worker_count": workers.get(e.id, 0),
                    "today_present": present.get(e.id, 0),
                }
                for e in establishments
            ]

        return await self._cached(
            (qk.DEPARTMENT_ESTABLISHMENTS, str(department_id), today.isoformat()), compute
        )

    async def department_stats(self, department_id: uuid.UUID, today: Optional[date] = None) -> dict:
        today = today or date.today()

        async def compute():
            department = await self.db.get(Department, department_id)
            if department is None:
                raise NotFoundError(f"Department {department_id} not found")
            mapped = await self._active_mapped_count(self._mapped_in_department(department_id))
            counts = await self._status_counts(
                self._in_department(department_id),
                AttendanceDailyRollup.attendance_date == today,
            )
            present, partial = counts["PRESENT"], counts["PARTIAL"]
            return {
                "total_establishments": await self._count(
                    Establishment, Establishment.department_id == department_id
                ),
                "active_establishments": await self._count(
                    Establishment,
                    Establishment.department_id == department_id,
                    Establishment.is_active,
                ),
                "total_workers": mapped,
                "today_present": present,
                "today_partial": partial,
                "today_absent": max(0, mapped - present - partial),
                "attendance_rate": _rate(present + partial, mapped),
            }

        return await self._cached(
            (qk.DEPARTMENT_STATS, str(department_id), today.isoformat()), compute
        )

    async def department_workers(self, department_id: uuid.UUID) -> list[dict]:
        async def compute():
            result = await self.db.execute(
                select(Worker, Establishment.name)
                .join(WorkerMapping, WorkerMapping.worker_id == Worker.id)
                .join(Establishment, Establishment.id == WorkerMapping.establishment_id)
                .where(Establishment.department_id == department_id, WorkerMapping.is_active)
                .order_by(Worker.first_name, Worker.last_name)
            )
            return [
                {**_worker_dict(w), "establishment_name": est_name}
                for w, est_name in result.all()
            ]

        return await self._cached((qk.DEPARTMENT_WORKERS, str(department_id)), compute)

    async def department_attendance_trend(self, department_id: uuid.UUID, days: int = 7,
                                          today: Optional[date] = None) -> list[dict]:
        today = today or date.today()
        return await self._cached(
            (qk.DEPARTMENT_ATTENDANCE_TREND, str(department_id), days, today.isoformat()),
            lambda: self._department_trend(department_id, today - timedelta(days=days), today),
        )

    async def department_attendance_trend_range(self, department_id: uuid.UUID,
                                                start: date, end: date) -> list[dict]:
        return await self._cached(
            (qk.DEPARTMENT_ATTENDANCE_TREND_RANGE, str(department_id),
             start.isoformat(), end.isoformat()),
            lambda: self._department_trend(department_id, start, end),
        )

    async def _department_trend(self, department_id: uuid.UUID, start: date, end: date) -> list[dict]:
        expected = await self._active_mapped_count(self._mapped_in_department(department_id))
        return await self._trend(start, end, expected, self._in_department(department_id))

    async def unmapped_workers(self, district: Optional[str] = None) -> list[dict]:
        async def compute():
            mapped = select(WorkerMapping.worker_id).where(WorkerMapping.is_active)
            query = (
                select(Worker)
                .where(Worker.is_active, Worker.id.not_in(mapped))
                .order_by(Worker.created_at.desc())
            )
            if district:
                query = query.where(Worker.district == district)
            return [_worker_dict(w) for w in (await self.db.execute(query)).scalars()]

        return await self._cached((qk.UNMAPPED_WORKERS, district or "*"), compute)
