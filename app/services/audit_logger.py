"""Append-only audit trail for console mutations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

BULK_IMPORT_RECORD_ID = "bulk_import"


class AuditAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class AuditLogEntry:
    table_name: str
    record_id: str
    action: AuditAction
    performed_by: Optional[str]
    old_data: Optional[Mapping[str, Any]] = None
    new_data: Optional[Mapping[str, Any]] = None
    performed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AuditWriter = Callable[[dict[str, Any]], None]


def _serialize_snapshot(snapshot: Optional[Mapping[str, Any]]) -> Optional[str]:
    if snapshot is None:
        return None
    return json.dumps(dict(snapshot), default=str, sort_keys=True)


def decode_snapshot(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if raw is None:
        return None
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("audit:decode-failed length=%d", len(raw))
        return None
    return decoded if isinstance(decoded, dict) else None


class AuditLogger:
    """Write audit entries without ever failing the operation that triggered them."""

    def __init__(self, writer: AuditWriter) -> None:
        self._writer = writer

    def record(self, entry: AuditLogEntry) -> bool:
        if not entry.performed_by:
            logger.warning(
                "audit:skipped reason=no-user table=%s record=%s action=%s",
                entry.table_name,
                entry.record_id,
                entry.action.value,
            )
            return False

        payload = {
            "table_name": entry.table_name,
            "record_id": str(entry.record_id),
            "action": entry.action.value,
            "old_data": _serialize_snapshot(entry.old_data),
            "new_data": _serialize_snapshot(entry.new_data),
            "performed_by": entry.performed_by,
            "performed_at": entry.performed_at,
        }

        try:
            self._writer(payload)
        except Exception as exc:
            logger.warning(
                "audit:write-failed table=%s record=%s action=%s error=%s",
                entry.table_name,
                entry.record_id,
                entry.action.value,
                exc,
            )
            return False

        logger.debug(
            "audit:recorded table=%s record=%s action=%s",
            entry.table_name,
            entry.record_id,
            entry.action.value,
        )
        return True


__all__ = [
    "BULK_IMPORT_RECORD_ID",
    "AuditAction",
    "AuditLogEntry",
    "AuditLogger",
    "decode_snapshot",
]
