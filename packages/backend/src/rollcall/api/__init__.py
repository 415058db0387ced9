"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Routes are read-only. Writes to the six tracked tables happen in
other services; this API only serves dashboard reads and reports on the
realtime layer that keeps those reads fresh.
"""

from fastapi import APIRouter

from rollcall.api.dashboards import router as dashboards_router
from rollcall.api.health import router as health_router
from rollcall.api.realtime import router as realtime_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(realtime_router, tags=["realtime"])
api_router.include_router(dashboards_router, tags=["dashboards"])
