"""Startup validation of the realtime configuration.

Learn: the dependency map and the toast templates are static data, so the
only time they can be wrong is when someone edits them. Checking them once
at boot turns a silent stale-data bug into a refusal to start.
"""

from typing import Iterable, Mapping

import structlog

from rollcall.realtime.query_keys import ALL_QUERY_KEYS
from rollcall.realtime.routing import DEPENDENCY_MAP, DependencyMap
from rollcall.realtime.tables import TableName
from rollcall.realtime.templates import NOTIFICATION_TEMPLATES, NotificationTemplate

logger = structlog.get_logger()


class RealtimeConfigError(Exception):
    """Raised when the dependency map or templates are incomplete."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid realtime configuration: " + "; ".join(problems))


def find_config_problems(
    dependency_map: DependencyMap = DEPENDENCY_MAP,
    templates: Mapping[TableName, NotificationTemplate] = NOTIFICATION_TEMPLATES,
    known_prefixes: Iterable[str] = ALL_QUERY_KEYS,
) -> list[str]:
    """Return a human-readable list of everything wrong with the config."""
    problems: list[str] = []
    known = set(known_prefixes)
    reachable: set[str] = set()

    for table in TableName:
        if table not in dependency_map:
            problems.append(f"{table}: no dependency map entry")
        else:
            prefixes = dependency_map[table]
            duplicates = sorted({p for p in prefixes if list(prefixes).count(p) > 1})
            if duplicates:
                problems.append(f"{table}: duplicate prefixes {duplicates}")
            unknown = [p for p in prefixes if p not in known]
            if unknown:
                problems.append(f"{table}: prefixes not in query-key catalogue {unknown}")
            reachable.update(prefixes)

        if table not in templates:
            problems.append(f"{table}: no notification template")

    for prefix in sorted(known - reachable):
        problems.append(f"{prefix}: cached but never invalidated by any table")

    return problems


def validate_realtime_config(
    dependency_map: DependencyMap = DEPENDENCY_MAP,
    templates: Mapping[TableName, NotificationTemplate] = NOTIFICATION_TEMPLATES,
    known_prefixes: Iterable[str] = ALL_QUERY_KEYS,
) -> None:
    """Raise RealtimeConfigError unless every table is fully configured."""
    problems = find_config_problems(dependency_map, templates, known_prefixes)
    if problems:
        logger.error("realtime.config_invalid", problems=problems)
        raise RealtimeConfigError(problems)
    logger.info(
        "realtime.config_valid",
        tables=len(dependency_map),
        prefixes=len(set(known_prefixes)),
    )
