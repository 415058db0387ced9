"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The process-wide realtime pieces (QueryCache, toast debouncer)
are created with the app and parked on app.state, so they exist even when
the lifespan does not run (ASGITransport in tests). The lifespan adds the
things that need the network: Redis and the LISTEN connection.

Startup order matters:
1. Logging, then the realtime config check. A dependency map with holes
   must stop the process before it serves stale dashboards.
2. Redis (optional: without it toasts are skipped).
3. The change stream (optional: without it views report realtime.degraded).
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rollcall import __version__
from rollcall.api import api_router
from rollcall.cache.query_cache import QueryCache
from rollcall.config import settings
from rollcall.logging_config import configure_logging
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.pubsub import RedisToastSink
from rollcall.realtime.query_keys import ALL_QUERY_KEYS
from rollcall.realtime.validation import validate_realtime_config

logger = structlog.get_logger()


def asyncpg_dsn(database_url: str) -> str:
    """SQLAlchemy URL → plain asyncpg DSN."""
    return database_url.replace("+asyncpg", "")


def invalidate_everything(cache: QueryCache) -> None:
    """Drop every cached family. Used after a LISTEN reconnect gap."""
    for prefix in sorted(ALL_QUERY_KEYS):
        cache.invalidate(prefix)
    logger.info("realtime.cache_resynced", prefixes=len(ALL_QUERY_KEYS))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    configure_logging(settings.log_level, settings.log_format)
    logger.info(
        "rollcall.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    validate_realtime_config()

    from rollcall.realtime.pubsub import close_redis, init_redis
    try:
        await init_redis()
        logger.info("rollcall.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("rollcall.redis_unavailable", error=str(e))

    stream = None
    if settings.realtime_enabled:
        from rollcall.realtime.stream import PostgresChangeStream
        stream = PostgresChangeStream(
            asyncpg_dsn(settings.database_url),
            channel_prefix=settings.realtime_channel_prefix,
        )
        try:
            await stream.start()
            stream.add_reconnect_listener(lambda: invalidate_everything(app.state.query_cache))
        except Exception as e:
            logger.warning("rollcall.change_stream_unavailable", error=str(e))
            stream = None
    app.state.change_stream = stream

    yield

    logger.info("rollcall.shutdown")

    if stream is not None:
        await stream.stop()
    app.state.change_stream = None

    await close_redis()

    from rollcall.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Rollcall Dashboards",
        description="Attendance dashboards with realtime cache coherence",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.query_cache = QueryCache(max_retries=settings.query_cache_max_retries)
    app.state.debouncer = NotificationDebouncer(
        RedisToastSink(),
        interval=settings.toast_debounce_seconds,
        position=settings.toast_position,
        duration_ms=settings.toast_duration_ms,
        enabled=settings.show_toasts,
    )
    app.state.change_stream = None

    # ── Middleware stack ──────────────────────────────────────
    from rollcall.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from rollcall.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: rollcall.main:app)
app = create_app()
