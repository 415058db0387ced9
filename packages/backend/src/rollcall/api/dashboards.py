"""Dashboard read routes — one group per dashboard kind.

Learn: Every handler is a thin wrapper over DashboardService. The service
answers from the QueryCache when it can; the WebSocket at /ws/dashboard
tells the client which prefixes went stale so it knows when to call these
again.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from rollcall.api.deps import get_dashboard_service
from rollcall.services.dashboard_service import DashboardService, NotFoundError

router = APIRouter()


# ─── Overview ───────────────────────────────────────────

@router.get("/overview/stats")
async def overview_stats(svc: DashboardService = Depends(get_dashboard_service)):
    return await svc.overview_stats()


@router.get("/overview/activity")
async def recent_activity(
    limit: int = Query(10, ge=1, le=50),
    svc: DashboardService = Depends(get_dashboard_service),
):
    return await svc.recent_activity(limit)


@router.get("/overview/trend")
async def attendance_trend_overview(
    days: int = Query(7, ge=1, le=90),
    svc: DashboardService = Depends(get_dashboard_service),
):
    return await svc.attendance_trend_overview(days)


# ─── Workers ────────────────────────────────────────────

@router.get("/workers/unmapped")
async def unmapped_workers(
    district: Optional[str] = None,
    svc: DashboardService = Depends(get_dashboard_service),
):
    return await svc.unmapped_workers(district)


@router.get("/workers/{worker_id}")
async def worker_profile(worker_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    try:
        return await svc.worker_profile(worker_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/workers/{worker_id}/establishment")
async def worker_establishment(worker_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    return await svc.worker_establishment(worker_id)


@router.get("/workers/{worker_id}/attendance/today")
async def worker_today_attendance(worker_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    return await svc.worker_today_attendance(worker_id)


@router.get("/workers/{worker_id}/attendance")
async def worker_attendance_history(
    worker_id: uuid.UUID,
    start: date,
    end: date,
    svc: DashboardService = Depends(get_dashboard_service),
):
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    return await svc.worker_attendance_history(worker_id, start, end)


@router.get("/workers/{worker_id}/attendance/monthly")
async def worker_monthly_stats(worker_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    return await svc.worker_monthly_stats(worker_id)


@router.get("/workers/{worker_id}/attendance/trend")
async def worker_attendance_trend(
    worker_id: uuid.UUID,
    days: int = Query(30, ge=1, le=90),
    svc: DashboardService = Depends(get_dashboard_service),
):
    return await svc.worker_attendance_trend(worker_id, days)


# ─── Establishments ─────────────────────────────────────

@router.get("/establishments/{establishment_id}/workers")
async def establishment_workers(
    establishment_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)
):
    return await svc.establishment_workers(establishment_id)


@router.get("/establishments/{establishment_id}/attendance/today")
async def establishment_today_attendance(
    establishment_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)
):
    return await svc.establishment_today_attendance(establishment_id)


@router.get("/establishments/{establishment_id}/attendance/trend")
async def establishment_attendance_trend(
    establishment_id: uuid.UUID,
    days: int = Query(7, ge=1, le=90),
    start: Optional[date] = None,
    end: Optional[date] = None,
    svc: DashboardService = Depends(get_dashboard_service),
):
    """Last `days` days, or an explicit start/end range when both are given."""
    if start and end:
        if start > end:
            raise HTTPException(status_code=422, detail="start must not be after end")
        return await svc.establishment_attendance_trend_range(establishment_id, start, end)
    return await svc.establishment_attendance_trend(establishment_id, days)


# ─── Departments ────────────────────────────────────────

@router.get("/departments/{department_id}/stats")
async def department_stats(department_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    try:
        return await svc.department_stats(department_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/departments/{department_id}/establishments")
async def department_establishments(
    department_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)
):
    return await svc.department_establishments(department_id)


@router.get("/departments/{department_id}/workers")
async def department_workers(department_id: uuid.UUID, svc: DashboardService = Depends(get_dashboard_service)):
    return await svc.department_workers(department_id)


@router.get("/departments/{department_id}/attendance/trend")
async def department_attendance_trend(
    department_id: uuid.UUID,
    days: int = Query(7, ge=1, le=90),
    start: Optional[date] = None,
    end: Optional[date] = None,
    svc: DashboardService = Depends(get_dashboard_service),
):
    """Last `days` days, or an explicit start/end range when both are given."""
    if start and end:
        if start > end:
            raise HTTPException(status_code=422, detail="start must not be after end")
        return await svc.department_attendance_trend_range(department_id, start, end)
    return await svc.department_attendance_trend(department_id, days)
