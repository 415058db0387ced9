"""Redis pub/sub — toast and event broadcasting to dashboard WebSockets.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for toasts: they are advisory, and the data itself is
kept correct by cache invalidation, not by the toast.

Channel naming: rollcall:toasts carries the debounced "data updated" toasts.
Every dashboard WebSocket subscribes to it.
"""

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog

from rollcall.config import settings
from rollcall.realtime.templates import Notification

logger = structlog.get_logger()

TOAST_CHANNEL = "rollcall:toasts"

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def redis_available() -> bool:
    return _redis is not None


async def publish_event(channel: str, event_type: str, data: dict[str, Any]) -> None:
    """Publish a typed JSON event on a Redis channel."""
    r = get_redis()
    payload = json.dumps({"type": event_type, **data})
    await r.publish(channel, payload)


class RedisToastSink:
    """Debouncer sink that publishes toasts to TOAST_CHANNEL.

    Learn: The debouncer calls sinks synchronously. Publishing is async, so
    we schedule it on the loop and return immediately. Failures are logged
    from the task's done-callback; they never reach the change handler.
    """

    def __init__(self, channel: str = TOAST_CHANNEL):
        self.channel = channel
        self._pending: set[asyncio.Task] = set()

    def __call__(self, notification: Notification) -> None:
        if not redis_available():
            logger.debug("realtime.toast_skipped", reason="redis_unavailable")
            return
        task = asyncio.create_task(
            publish_event(self.channel, "toast", notification.to_dict())
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("realtime.toast_publish_failed", error=str(exc))
