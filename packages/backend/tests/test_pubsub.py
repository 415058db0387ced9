"""Redis toast sink tests — fire-and-forget publishing."""

import asyncio
import json

import pytest

from rollcall.realtime import pubsub
from rollcall.realtime.tables import TableName
from rollcall.realtime.templates import NOTIFICATION_TEMPLATES, render


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail

    async def publish(self, channel, payload):
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, json.loads(payload)))


def _toast(table=TableName.WORKERS):
    return render(table, NOTIFICATION_TEMPLATES[table], "bottom-right")


@pytest.mark.asyncio
async def test_toast_published_on_channel(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(pubsub, "_redis", fake)

    sink = pubsub.RedisToastSink()
    sink(_toast())
    await asyncio.sleep(0.01)

    channel, payload = fake.published[0]
    assert channel == pubsub.TOAST_CHANNEL
    assert payload["type"] == "toast"
    assert payload["table"] == "workers"
    assert payload["description"] == "Worker data refreshed"


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(monkeypatch):
    monkeypatch.setattr(pubsub, "_redis", FakeRedis(fail=True))

    sink = pubsub.RedisToastSink()
    sink(_toast())
    await asyncio.sleep(0.01)

    assert sink._pending == set()


def test_skipped_without_redis(monkeypatch):
    monkeypatch.setattr(pubsub, "_redis", None)
    pubsub.RedisToastSink()(_toast())


def test_get_redis_requires_init(monkeypatch):
    monkeypatch.setattr(pubsub, "_redis", None)
    with pytest.raises(RuntimeError):
        pubsub.get_redis()
