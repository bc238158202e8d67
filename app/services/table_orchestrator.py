"""Per-table view controller: load, mutate, audit and reconcile one console table."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.constants.system_fields import RECORD_ID_FIELD
from app.schemas.definitions import FieldType, Relationship, TableDefinition
from app.services.audit_logger import BULK_IMPORT_RECORD_ID, AuditAction, AuditLogEntry, AuditLogger
from app.services.change_feed import ChangeEvent, ChangeFeed, Subscription
from app.services.csv_interchange import CsvImportError, export_csv, parse_import
from app.services.data_grid import DEFAULT_PAGE_SIZE, DataGrid, columns_for_table
from app.services.data_insights import TableInsights, analyze_table_data
from app.services.errors import (
    AdminError,
    DependencyConflictError,
    FieldViolation,
    OperationNotPermittedError,
    RecordNotFoundError,
    RecordValidationError,
)
from app.services.form_renderer import DEFAULT_OPTION_LIMIT, DynamicForm, visible_fields
from app.services.remote_store import ForeignKeyExpansion, RemoteStore
from app.services.schema_registry import SchemaRegistry
from app.services.validation_rules import compile_validator

logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOAD_ERROR = "load_error"


_TRANSITIONS: dict[ViewState, set[ViewState]] = {
    ViewState.IDLE: {ViewState.LOADING},
    ViewState.LOADING: {ViewState.READY, ViewState.LOAD_ERROR},
    ViewState.READY: {ViewState.LOADING},
    ViewState.LOAD_ERROR: {ViewState.LOADING},
}


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


@dataclass
class OperationResult:
    success: bool
    message: str
    records: list[dict[str, Any]] = field(default_factory=list)
    violations: list[FieldViolation] = field(default_factory=list)
    error: Optional[AdminError] = None
    count: int = 0


def _snapshot(row: Mapping[str, Any]) -> dict[str, Any]:
    return copy.deepcopy({key: value for key, value in row.items() if not key.startswith("_")})


class TableOrchestrator:
    """Owns the in-memory record list of the active table.

    Every mutation validates first, writes through the record store, appends
    an audit entry and reloads. Failures become a ``Notification`` and a
    failed ``OperationResult``; nothing is retried.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        table_name: str,
        *,
        store: RemoteStore,
        audit_logger: AuditLogger,
        user: Optional[str] = None,
        change_feed: Optional[ChangeFeed] = None,
        option_limit: int = DEFAULT_OPTION_LIMIT,
    ) -> None:
        self.table: TableDefinition = registry.find_table(table_name)
        self.relationships: list[Relationship] = registry.relationships_to(table_name)
        self.store = store
        self.audit_logger = audit_logger
        self.user = user
        self.change_feed = change_feed
        self.option_limit = option_limit

        self.state = ViewState.IDLE
        self.records: list[dict[str, Any]] = []
        self.dependent_counts: dict[str, int] = {}
        self.stale = False
        self.load_error: Optional[str] = None
        self.notifications: list[Notification] = []
        self._subscription: Optional[Subscription] = None

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def _label(self) -> str:
        return self.table.display_name.lower()

    # State -----------------------------------------------------------------

    def _transition(self, target: ViewState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid view transition {self.state.value} -> {target.value}")
        self.state = target

    def _notify(self, level: str, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self.notifications.append(notification)
        log = logger.warning if level == "error" else logger.info
        log("orchestrator:notify table=%s level=%s message=%s", self.table.name, level, message)
        return notification

    def _ensure_writable(self) -> None:
        if self.table.read_only:
            raise OperationNotPermittedError(f"{self.table.display_name} is read-only")

    # Loading ---------------------------------------------------------------

    def foreign_key_expansions(self) -> list[ForeignKeyExpansion]:
        return [
            ForeignKeyExpansion(
                field=definition.name,
                table=definition.foreign_key.table,
                display_field=definition.foreign_key.display_field,
            )
            for definition in self.table.fields
            if definition.type is FieldType.FOREIGN_KEY and definition.foreign_key is not None
        ]

    def _count_dependents(self, rows: Sequence[Mapping[str, Any]]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for relationship in self.relationships:
            keys = [row.get(relationship.to.field) for row in rows]
            count = self.store.count(relationship.from_.table, relationship.from_.field, keys)
            if count:
                counts[relationship.from_.table] = counts.get(relationship.from_.table, 0) + count
        return counts

    def load(self) -> OperationResult:
        self._transition(ViewState.LOADING)
        try:
            rows = self.store.select_rows(self.table.name, expand=self.foreign_key_expansions())
            counts = self._count_dependents(rows)
        except AdminError as exc:
            self._transition(ViewState.LOAD_ERROR)
            self.stale = bool(self.records)
            self.load_error = f"Failed to load {self._label}: {exc.message}"
            self._notify("error", f"Failed to load {self._label}")
            return OperationResult(success=False, message=self.load_error, records=list(self.records), error=exc)

        self.records = rows
        self.dependent_counts = counts
        self.stale = False
        self.load_error = None
        self._transition(ViewState.READY)
        logger.debug("orchestrator:load table=%s rows=%d", self.table.name, len(rows))
        return OperationResult(
            success=True,
            message=f"Loaded {len(rows)} {self._label}",
            records=list(rows),
            count=len(rows),
        )

    def _find_record(self, record_id: str) -> dict[str, Any]:
        for row in self.records:
            if row.get(RECORD_ID_FIELD) == record_id:
                return row
        rows = self.store.select_rows(self.table.name, ids=[record_id])
        if not rows:
            raise RecordNotFoundError(f"{self.table.display_name} record {record_id} not found")
        return rows[0]

    def get_record(self, record_id: str) -> dict[str, Any]:
        rows = self.store.select_rows(self.table.name, ids=[record_id], expand=self.foreign_key_expansions())
        if not rows:
            raise RecordNotFoundError(f"{self.table.display_name} record {record_id} not found")
        return rows[0]

    def dependents_of(self, record: Mapping[str, Any]) -> dict[str, int]:
        return self._count_dependents([record])

    # Forms -----------------------------------------------------------------

    def open_form(self, record_id: Optional[str] = None) -> DynamicForm:
        self._ensure_writable()
        if record_id is None:
            return DynamicForm(
                self.table,
                option_loader=self.store.select_options,
                on_submit=self.create,
                option_limit=self.option_limit,
            )

        snapshot = _snapshot(self._find_record(record_id))
        dependents = self.dependents_of(snapshot)
        if dependents:
            summary = ", ".join(f"{count} records in {name}" for name, count in dependents.items())
            self._notify(
                "info",
                f"This record has dependent records: {summary}. Please review carefully before making changes.",
            )
        return DynamicForm(
            self.table,
            snapshot,
            option_loader=self.store.select_options,
            on_submit=lambda candidate: self.update(record_id, candidate, snapshot=snapshot),
            option_limit=self.option_limit,
        )

    # Mutations -------------------------------------------------------------

    def _audit(
        self,
        action: AuditAction,
        record_id: str,
        *,
        old_data: Optional[Mapping[str, Any]] = None,
        new_data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        return self.audit_logger.record(
            AuditLogEntry(
                table_name=self.table.name,
                record_id=record_id,
                action=action,
                performed_by=self.user,
                old_data=old_data,
                new_data=new_data,
            )
        )

    def _reload_after_mutation(self) -> None:
        if self.state is ViewState.LOADING:
            return
        self.load()

    def _validation_failure(self, violations: Sequence[FieldViolation]) -> OperationResult:
        error = RecordValidationError(violations)
        self._notify("error", f"Please correct the highlighted {self._label} fields")
        return OperationResult(success=False, message=error.message, violations=list(violations), error=error)

    def _failure(self, message: str, exc: AdminError) -> OperationResult:
        self._notify("error", message)
        return OperationResult(success=False, message=message, error=exc)

    def create(self, payload: Mapping[str, Any]) -> OperationResult:
        self._ensure_writable()
        submission = DynamicForm(self.table).submit(payload)
        if not submission.valid:
            return self._validation_failure(submission.violations)

        candidate = submission.candidate
        try:
            row = self.store.handle_data_change(
                self.table.name,
                None,
                None,
                json.dumps(candidate, default=str),
                AuditAction.INSERT.value,
                self.user,
            )
        except AdminError as exc:
            return self._failure(f"Failed to save {self._label}", exc)

        self._audit(AuditAction.INSERT, str(row[RECORD_ID_FIELD]), new_data=candidate)
        message = f"{self.table.display_name} created successfully"
        self._notify("success", message)
        self._reload_after_mutation()
        return OperationResult(success=True, message=message, records=[row], count=1)

    def update(
        self,
        record_id: str,
        payload: Mapping[str, Any],
        *,
        snapshot: Optional[Mapping[str, Any]] = None,
    ) -> OperationResult:
        self._ensure_writable()
        try:
            original = _snapshot(snapshot if snapshot is not None else self._find_record(record_id))
        except AdminError as exc:
            return self._failure(f"Failed to save {self._label}", exc)

        submission = DynamicForm(self.table, original).submit(payload)
        if not submission.valid:
            return self._validation_failure(submission.violations)

        candidate = submission.candidate
        try:
            row = self.store.handle_data_change(
                self.table.name,
                record_id,
                json.dumps(original, default=str),
                json.dumps(candidate, default=str),
                AuditAction.UPDATE.value,
                self.user,
            )
        except AdminError as exc:
            return self._failure(f"Failed to save {self._label}", exc)

        self._audit(AuditAction.UPDATE, record_id, old_data=original, new_data=candidate)
        message = f"{self.table.display_name} updated successfully"
        self._notify("success", message)
        self._reload_after_mutation()
        return OperationResult(success=True, message=message, records=[row], count=1)

    def _check_dependents(self, targets: Iterable[Mapping[str, Any]]) -> None:
        for target in targets:
            for relationship in self.relationships:
                count = self.store.count(
                    relationship.from_.table,
                    relationship.from_.field,
                    [target.get(relationship.to.field)],
                )
                if count > 0:
                    raise DependencyConflictError(
                        f"Cannot delete: This {self._label} is referenced by {count} records "
                        f"in {relationship.from_.table}",
                        table_name=relationship.from_.table,
                        count=count,
                    )

    def delete(self, record_ids: Sequence[str]) -> OperationResult:
        self._ensure_writable()
        ids = list(dict.fromkeys(str(item) for item in record_ids))
        if not ids:
            return OperationResult(success=False, message="No records selected")

        try:
            targets = self.store.select_rows(self.table.name, ids=ids)
            found = {row[RECORD_ID_FIELD] for row in targets}
            missing = [record_id for record_id in ids if record_id not in found]
            if missing:
                raise RecordNotFoundError(f"{self.table.display_name} record {missing[0]} not found")
            self._check_dependents(targets)
            deleted = self.store.delete_rows(self.table.name, ids)
        except DependencyConflictError as exc:
            return self._failure(exc.message, exc)
        except AdminError as exc:
            return self._failure(f"Failed to delete {self._label}", exc)

        for target in targets:
            self._audit(AuditAction.DELETE, str(target[RECORD_ID_FIELD]), old_data=_snapshot(target))
        message = f"{self.table.display_name} deleted successfully"
        self._notify("success", message)
        self._reload_after_mutation()
        return OperationResult(success=True, message=message, records=targets, count=deleted)

    def bulk_import(self, content: str | bytes) -> OperationResult:
        self._ensure_writable()
        try:
            parsed = parse_import(self.table, content)
            if not parsed.rows:
                raise CsvImportError("Uploaded file contains no records.")
        except CsvImportError as exc:
            return self._failure(exc.message, exc)

        validator = compile_validator(
            self.table, fields=[definition.name for definition in visible_fields(self.table, creating=True)]
        )
        violations: list[FieldViolation] = []
        for index, row in enumerate(parsed.rows, start=1):
            result = validator.validate(row)
            violations.extend(
                FieldViolation(field=item.field, message=f"Row {index}: {item.message}") for item in result.violations
            )
        if violations:
            return self._validation_failure(violations)

        try:
            inserted = self.store.insert_rows(self.table.name, parsed.rows, user_identity=self.user)
        except AdminError as exc:
            return self._failure(f"Failed to import {self._label}", exc)

        self._audit(AuditAction.INSERT, BULK_IMPORT_RECORD_ID, new_data={"count": len(inserted)})
        message = f"Successfully imported {len(inserted)} {self._label}"
        self._notify("success", message)
        self._reload_after_mutation()
        return OperationResult(success=True, message=message, records=inserted, count=len(inserted))

    # Views -----------------------------------------------------------------

    def export_csv(self) -> str:
        return export_csv(self.table, self.records)

    def insights(self) -> TableInsights:
        return analyze_table_data(self.records)

    def grid(self, *, page_size: int = DEFAULT_PAGE_SIZE) -> DataGrid:
        return DataGrid(
            columns_for_table(self.table),
            self.records,
            page_size=page_size,
            on_edit=lambda row: self.open_form(row[RECORD_ID_FIELD]),
            on_delete=lambda rows: self.delete([row[RECORD_ID_FIELD] for row in rows]),
        )

    # Change reconciliation -------------------------------------------------

    def handle_change(self, event: ChangeEvent) -> None:
        if event.table_name != self.table.name:
            return
        logger.debug("orchestrator:change table=%s action=%s", event.table_name, event.action)
        if self.state is ViewState.LOADING:
            return
        self.load()

    def activate(self) -> "TableOrchestrator":
        if self.change_feed is not None and self._subscription is None:
            self._subscription = self.change_feed.subscribe(self.table.name, self.handle_change)
        if self.state is ViewState.IDLE:
            self.load()
        return self

    def deactivate(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    def __enter__(self) -> "TableOrchestrator":
        return self.activate()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.deactivate()


__all__ = [
    "Notification",
    "OperationResult",
    "TableOrchestrator",
    "ViewState",
]
