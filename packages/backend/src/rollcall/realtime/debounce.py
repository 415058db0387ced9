"""Toast debouncer — at most one "data updated" toast per interval.

Learn: A burst of writes (a bulk check-in, a rollup job) produces dozens of
change events across several tables within one round-trip. Showing a toast
for each would spam the UI, so the debouncer is a strict rate limiter:

- The window is global, not per table. Any toast shown in the last
  `interval` seconds suppresses the next one, whatever table it is for.
- Suppressed toasts are dropped, never queued or merged into a later one.
- The last-shown timestamp is checked and written under one lock with no
  await in between, then the sink is called. A second event arriving while
  the first toast is still being delivered sees the new timestamp.

The clock is injected so tests can step time instead of sleeping.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

import structlog

from rollcall.realtime.tables import TableName
from rollcall.realtime.templates import (
    NOTIFICATION_TEMPLATES,
    Notification,
    NotificationTemplate,
    render,
)

logger = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 3.0

NotificationSink = Callable[[Notification], None]


@dataclass
class DebounceStats:
    shown: int = 0
    suppressed: int = 0
    sink_errors: int = 0


class NotificationDebouncer:
    """Process-wide rate limiter for change toasts."""

    def __init__(
        self,
        sink: NotificationSink,
        interval: float = DEFAULT_DEBOUNCE_SECONDS,
        templates: Mapping[TableName, NotificationTemplate] = NOTIFICATION_TEMPLATES,
        position: str = "bottom-right",
        duration_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ):
        self._sink = sink
        self.interval = interval
        self._templates = templates
        self.position = position
        self.duration_ms = duration_ms
        self._clock = clock
        self.enabled = enabled
        self._last_shown: Optional[float] = None
        self._lock = threading.Lock()
        self.stats = DebounceStats()

    def _try_acquire(self) -> bool:
        """Atomically claim the current window. True if the caller may show."""
        with self._lock:
            now = self._clock()
            if self._last_shown is not None and now - self._last_shown < self.interval:
                self.stats.suppressed += 1
                return False
            self._last_shown = now
            self.stats.shown += 1
            return True

    def notify(self, table: TableName) -> bool:
        """Show the toast for `table` unless one was shown within the interval.

        Returns True if a toast was handed to the sink.
        """
        if not self.enabled:
            return False

        template = self._templates[table]
        if not self._try_acquire():
            logger.debug("realtime.toast_suppressed", table=str(table))
            return False

        notification = render(table, template, self.position, self.duration_ms)
        try:
            self._sink(notification)
        except Exception:
            self.stats.sink_errors += 1
            logger.exception("realtime.toast_failed", table=str(table))
        return True

    def reset(self) -> None:
        """Forget the last toast so the next change shows immediately."""
        with self._lock:
            self._last_shown = None

    def get_stats(self) -> dict:
        return {
            "interval_seconds": self.interval,
            "enabled": self.enabled,
            "shown": self.stats.shown,
            "suppressed": self.stats.suppressed,
            "sink_errors": self.stats.sink_errors,
        }
