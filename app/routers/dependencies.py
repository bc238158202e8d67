from __future__ import annotations

from typing import NoReturn, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import get_db
from app.services.audit_logger import AuditLogger
from app.services.auth import CurrentUser, require_user, user_identity
from app.services.change_feed import ChangeFeed, get_change_feed
from app.services.csv_interchange import CsvImportError
from app.services.errors import (
    AdminError,
    ConfigurationError,
    DependencyConflictError,
    OperationNotPermittedError,
    RecordNotFoundError,
    RecordValidationError,
    RemoteOperationError,
)
from app.services.remote_store import RemoteStore
from app.services.schema_registry import SchemaRegistry, get_schema_registry
from app.services.table_orchestrator import OperationResult, TableOrchestrator

_STATUS_BY_ERROR: tuple[tuple[type[AdminError], int], ...] = (
    (RecordValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (DependencyConflictError, status.HTTP_409_CONFLICT),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConfigurationError, status.HTTP_404_NOT_FOUND),
    (OperationNotPermittedError, status.HTTP_405_METHOD_NOT_ALLOWED),
    (CsvImportError, status.HTTP_400_BAD_REQUEST),
    (RemoteOperationError, status.HTTP_502_BAD_GATEWAY),
)


def raise_http_error(error: AdminError, message: Optional[str] = None) -> NoReturn:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = mapped
            break

    detail: object = message or error.message
    if isinstance(error, RecordValidationError):
        detail = {
            "message": message or error.message,
            "violations": [violation.dict() for violation in error.violations],
        }
    raise HTTPException(status_code=status_code, detail=detail) from error


def ensure_success(result: OperationResult) -> OperationResult:
    if result.success:
        return result
    if result.error is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    raise_http_error(result.error, result.message)


def get_remote_store(
    db: Session = Depends(get_db),
    change_feed: ChangeFeed = Depends(get_change_feed),
) -> RemoteStore:
    return RemoteStore(db, change_feed=change_feed)


def get_audit_logger(store: RemoteStore = Depends(get_remote_store)) -> AuditLogger:
    return AuditLogger(store.append_audit)


def get_registry() -> SchemaRegistry:
    try:
        return get_schema_registry()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc


def get_table_orchestrator(
    table_name: str,
    registry: SchemaRegistry = Depends(get_registry),
    store: RemoteStore = Depends(get_remote_store),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    user: Optional[CurrentUser] = Depends(require_user),
    settings: Settings = Depends(get_settings),
) -> TableOrchestrator:
    try:
        return TableOrchestrator(
            registry,
            table_name,
            store=store,
            audit_logger=audit_logger,
            user=user_identity(user),
            option_limit=settings.foreign_key_option_limit,
        )
    except ConfigurationError as exc:
        raise_http_error(exc)


__all__ = [
    "ensure_success",
    "get_audit_logger",
    "get_registry",
    "get_remote_store",
    "get_table_orchestrator",
    "raise_http_error",
]
