"""Realtime configuration introspection.

Learn: The frontend and the CLI both need to know which tables exist, which
query families each one invalidates, and what toast it shows. Exposing the
static config read-only keeps the client from hardcoding its own copy.
"""

from fastapi import APIRouter

from rollcall.config import settings
from rollcall.realtime.query_keys import ALL_QUERY_KEYS
from rollcall.realtime.routing import DEPENDENCY_MAP, dependents_of
from rollcall.realtime.tables import DASHBOARD_PRESETS, TableName
from rollcall.realtime.templates import NOTIFICATION_TEMPLATES

router = APIRouter()


@router.get("/realtime/config")
async def realtime_config():
    """Tables, their invalidated prefixes and toast templates."""
    return {
        "tables": [
            {
                "name": table.value,
                "invalidates": list(DEPENDENCY_MAP.get(table, ())),
                "toast": {
                    "title": NOTIFICATION_TEMPLATES[table].title,
                    "description": NOTIFICATION_TEMPLATES[table].description,
                    "icon": NOTIFICATION_TEMPLATES[table].icon,
                },
            }
            for table in TableName
        ],
        "query_keys": {
            prefix: [t.value for t in dependents_of(prefix)]
            for prefix in sorted(ALL_QUERY_KEYS)
        },
        "dashboards": {
            kind: sorted(t.value for t in tables)
            for kind, tables in DASHBOARD_PRESETS.items()
        },
        "toasts": {
            "enabled": settings.show_toasts,
            "debounce_seconds": settings.toast_debounce_seconds,
            "duration_ms": settings.toast_duration_ms,
            "position": settings.toast_position,
        },
    }
