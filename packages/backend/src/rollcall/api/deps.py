"""Shared FastAPI dependencies for process-wide realtime state.

Learn: The QueryCache, NotificationDebouncer and change stream are created
once in the lifespan and parked on app.state. Routes reach them through
these small dependencies so tests can swap them with
app.dependency_overrides or by setting app.state directly.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from rollcall.cache.query_cache import QueryCache
from rollcall.db.engine import get_db
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.stream import PostgresChangeStream
from rollcall.services.dashboard_service import DashboardService


def get_query_cache(request: Request) -> QueryCache:
    return request.app.state.query_cache


def get_debouncer(request: Request) -> Optional[NotificationDebouncer]:
    return getattr(request.app.state, "debouncer", None)


def get_change_stream(request: Request) -> Optional[PostgresChangeStream]:
    return getattr(request.app.state, "change_stream", None)


def get_dashboard_service(
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(get_query_cache),
) -> DashboardService:
    return DashboardService(db, cache)
