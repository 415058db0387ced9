"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies (Postgres, Redis, the LISTEN connection) are reachable. The
realtime layer degrades instead of failing: a down change stream means
dashboards still work, they just stop refreshing on their own.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import text

from rollcall import __version__
from rollcall.api.deps import get_change_stream, get_debouncer, get_query_cache
from rollcall.cache.query_cache import QueryCache
from rollcall.db.engine import engine
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.pubsub import get_redis, redis_available
from rollcall.realtime.stream import PostgresChangeStream

router = APIRouter()


@router.get("/health")
async def health_check(
    cache: QueryCache = Depends(get_query_cache),
    debouncer: Optional[NotificationDebouncer] = Depends(get_debouncer),
    stream: Optional[PostgresChangeStream] = Depends(get_change_stream),
):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["postgres"] = "ok"
    except Exception as e:
        checks["postgres"] = f"error: {e}"

    if redis_available():
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"
    else:
        checks["redis"] = "unavailable"

    if stream is None:
        checks["change_stream"] = "disabled"
    elif stream.connected:
        checks["change_stream"] = "ok"
    else:
        checks["change_stream"] = "disconnected"

    status = "healthy" if all(
        checks[k] in ("ok", "disabled") for k in ("postgres", "redis", "change_stream")
    ) else "degraded"

    return {
        "status": status,
        **checks,
        "realtime": {
            "subscriptions": stream.subscription_count() if stream else 0,
            "reconnects": stream.reconnects if stream else 0,
            "reconnect_failures": stream.reconnect_failures if stream else 0,
            "cache": cache.get_stats(),
            "toasts": debouncer.get_stats() if debouncer else None,
        },
    }
