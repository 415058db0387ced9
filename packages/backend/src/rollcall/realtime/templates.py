"""Toast templates — what the user sees when a table changes.

There is no fallback template: a table without an entry is a
configuration error caught by validate_realtime_config() at startup.
"""

from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Mapping

from rollcall.realtime.tables import TableName


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    description: str
    icon: str
    duration_ms: int = 2000


@dataclass(frozen=True)
class Notification:
    """A rendered toast, ready for the UI layer."""

    table: TableName
    title: str
    description: str
    icon: str
    duration_ms: int
    position: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["table"] = self.table.value
        return data


def _updated(label: str, icon: str) -> NotificationTemplate:
    return NotificationTemplate(
        title="Data updated",
        description=f"{label} data refreshed",
        icon=icon,
    )


NOTIFICATION_TEMPLATES: Mapping[TableName, NotificationTemplate] = MappingProxyType({
    TableName.ATTENDANCE_EVENTS: _updated("Attendance", "clipboard-check"),
    TableName.ATTENDANCE_DAILY_ROLLUPS: _updated("Attendance", "calendar-check"),
    TableName.WORKER_MAPPINGS: _updated("Worker mapping", "link"),
    TableName.WORKERS: _updated("Worker", "user"),
    TableName.ESTABLISHMENTS: _updated("Establishment", "building"),
    TableName.DEPARTMENTS: _updated("Department", "landmark"),
})


def render(
    table: TableName,
    template: NotificationTemplate,
    position: str,
    duration_ms: int | None = None,
) -> Notification:
    """Fill a template for one table. `duration_ms` overrides the template's."""
    return Notification(
        table=table,
        title=template.title,
        description=template.description,
        icon=template.icon,
        duration_ms=template.duration_ms if duration_ms is None else duration_ms,
        position=position,
    )
