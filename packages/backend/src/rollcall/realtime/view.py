"""Scoped realtime acquisition for a dashboard view.

Learn: A view should never manage subscriptions by hand. `use_realtime` is
an async context manager: entering activates the table set, leaving tears
it down on every exit path, including an exception raised by the view's
own body after the subscriptions were opened.

    async with use_realtime(OVERVIEW_DASHBOARD_TABLES, stream=..., cache=...,
                            debouncer=...) as handle:
        if handle.degraded:
            ...  # show a staleness indicator for those tables
        ...  # serve the view

A table that fails to subscribe does not abort the block: the tables that
did open stay live and the failed ones are listed in `handle.degraded`.
Pass strict=True to get the SubscriptionError instead (after the partial
set has been torn down).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

import structlog

from rollcall.realtime.coordinator import (
    InvalidationTarget,
    RealtimeHandle,
    SubscriptionCoordinator,
    SubscriptionError,
)
from rollcall.realtime.debounce import NotificationDebouncer
from rollcall.realtime.stream import ChangeStream
from rollcall.realtime.tables import DASHBOARD_PRESETS, TableName

logger = structlog.get_logger()


@asynccontextmanager
async def use_realtime(
    tables: Iterable["TableName | str"],
    *,
    stream: ChangeStream,
    cache: InvalidationTarget,
    debouncer: Optional[NotificationDebouncer] = None,
    view: str = "dashboard",
    strict: bool = False,
) -> AsyncIterator[RealtimeHandle]:
    """Subscribe `tables` for the duration of the block.

    UnknownTableError always propagates before anything is opened.
    """
    coordinator = SubscriptionCoordinator(stream, cache, debouncer, view=view)
    try:
        try:
            handle = await coordinator.activate(tables)
        except SubscriptionError as e:
            if strict:
                raise
            logger.warning("realtime.view_degraded", view=view, tables=[str(t) for t in e.tables])
            handle = coordinator.handle
        yield handle
    finally:
        await coordinator.deactivate()


def use_dashboard_realtime(kind: str, **kwargs):
    """use_realtime() with one of the dashboard presets (worker, establishment, ...)."""
    try:
        tables = DASHBOARD_PRESETS[kind]
    except KeyError:
        available = ", ".join(sorted(DASHBOARD_PRESETS))
        raise ValueError(f"Unknown dashboard '{kind}'. Available: {available}") from None
    kwargs.setdefault("view", f"{kind}-dashboard")
    return use_realtime(tables, **kwargs)
