from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import AuditLog
from app.schemas import AuditLogRead
from app.services.audit_logger import decode_snapshot
from app.services.auth import require_user

router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"], dependencies=[Depends(require_user)])


def _serialize(entry: AuditLog) -> AuditLogRead:
    return AuditLogRead(
        id=entry.id,
        table_name=entry.table_name,
        record_id=entry.record_id,
        action=entry.action,
        old_data=decode_snapshot(entry.old_data),
        new_data=decode_snapshot(entry.new_data),
        performed_by=entry.performed_by,
        performed_at=entry.performed_at,
    )


@router.get("", response_model=list[AuditLogRead])
def list_audit_logs(
    table_name: Optional[str] = Query(default=None),
    record_id: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[AuditLogRead]:
    stmt = select(AuditLog)
    if table_name:
        stmt = stmt.where(AuditLog.table_name == table_name)
    if record_id:
        stmt = stmt.where(AuditLog.record_id == record_id)
    stmt = stmt.order_by(AuditLog.performed_at.desc()).limit(limit)
    return [_serialize(entry) for entry in db.execute(stmt).scalars().all()]
