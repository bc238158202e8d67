"""Summary statistics shown above a table's grid."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

from app.services.validation_rules import parse_date_value

RECENT_WINDOW = timedelta(days=7)
ACTIVE_STATUS = "Active"


@dataclass
class TableInsights:
    total_records: int = 0
    active_records: int = 0
    recent_changes: int = 0
    potential_issues: list[str] = field(default_factory=list)

    def dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "active_records": self.active_records,
            "recent_changes": self.recent_changes,
            "potential_issues": list(self.potential_issues),
        }


def _as_aware(value: Any) -> Optional[datetime]:
    parsed = parse_date_value(value)
    if parsed is None:
        return None
    if not isinstance(parsed, datetime):
        parsed = datetime(parsed.year, parsed.month, parsed.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def analyze_table_data(
    rows: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> TableInsights:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    threshold = current - RECENT_WINDOW

    insights = TableInsights()
    seen_names: set[Any] = set()
    for row in rows:
        insights.total_records += 1
        if row.get("status") == ACTIVE_STATUS:
            insights.active_records += 1

        modified = _as_aware(row.get("last_modified"))
        if modified is not None and modified > threshold:
            insights.recent_changes += 1

        if "name" in row:
            name = row.get("name")
            if name in seen_names:
                insights.potential_issues.append(f"Potential duplicate name: {name}")
            seen_names.add(name)

    return insights


__all__ = ["TableInsights", "analyze_table_data"]
