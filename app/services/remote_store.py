"""Table-scoped access to the Postgres-compatible record store."""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator, Mapping, Sequence
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, MetaData, Numeric, Table
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import app.models  # noqa: F401  (registers the store tables on Base.metadata)
from app.database import Base
from app.services.change_feed import ChangeEvent, ChangeFeed
from app.services.errors import ConfigurationError, RecordNotFoundError, RemoteOperationError
from app.services.validation_rules import parse_date_value

logger = logging.getLogger(__name__)

TRUE_VALUES = {"true", "t", "yes", "y", "1", "on"}
FALSE_VALUES = {"false", "f", "no", "n", "0", "off"}
EXPANDED_KEY = "_expanded"

DATA_CHANGE_ACTIONS = ("INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True)
class ForeignKeyExpansion:
    """Embed ``{id, display_field}`` of the referenced row under ``_expanded``."""

    field: str
    table: str
    display_field: str


def to_json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error_message(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", exc)) or str(exc)


class RemoteStore:
    """Read, write and count rows of the store tables; every write publishes a change."""

    def __init__(
        self,
        session: Session,
        *,
        change_feed: ChangeFeed | None = None,
        metadata: MetaData | None = None,
    ) -> None:
        self.session = session
        self.change_feed = change_feed
        self.metadata = metadata or Base.metadata

    # Reads -----------------------------------------------------------------

    def select_rows(
        self,
        table_name: str,
        *,
        ids: Iterable[str] | None = None,
        expand: Sequence[ForeignKeyExpansion] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        table = self._table(table_name)
        stmt = select(table).order_by(*self._default_order(table))
        if ids is not None:
            stmt = stmt.where(self._column(table, "id").in_(list(ids)))
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._reading("select", table_name):
            result = self.session.execute(stmt).mappings().all()
            rows = [self._serialize_row(row) for row in result]
            for expansion in expand:
                self._embed(rows, expansion)
        return rows

    def select_options(self, table_name: str, display_field: str, *, limit: int) -> list[dict[str, Any]]:
        table = self._table(table_name)
        id_column = self._column(table, "id")
        display_column = self._column(table, display_field)
        stmt = select(id_column, display_column).order_by(display_column).limit(limit)
        with self._reading("options", table_name):
            result = self.session.execute(stmt).mappings().all()
        return [self._serialize_row(row) for row in result]

    def count(self, table_name: str, field: str, values: Iterable[Any]) -> int:
        candidates = [value for value in values if value is not None]
        if not candidates:
            return 0
        table = self._table(table_name)
        stmt = select(func.count()).select_from(table).where(self._column(table, field).in_(candidates))
        with self._reading("count", table_name):
            return int(self.session.execute(stmt).scalar_one())

    # Writes ----------------------------------------------------------------

    def insert_rows(
        self,
        table_name: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        user_identity: str | None = None,
    ) -> list[dict[str, Any]]:
        if not rows:
            return []
        table = self._table(table_name)
        with self._writing("insert", table_name):
            ids = self._insert(table, rows, user_identity)
        self._publish(table_name, "INSERT", ids)
        return self._ordered(table_name, ids)

    def update_row(
        self,
        table_name: str,
        record_id: str,
        values: Mapping[str, Any],
        *,
        user_identity: str | None = None,
    ) -> dict[str, Any]:
        table = self._table(table_name)
        with self._writing("update", table_name):
            self._update(table, record_id, values, user_identity)
        self._publish(table_name, "UPDATE", [record_id])
        return self._ordered(table_name, [record_id])[0]

    def delete_rows(self, table_name: str, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        table = self._table(table_name)
        with self._writing("delete", table_name):
            deleted = self._delete(table, ids)
        self._publish(table_name, "DELETE", ids)
        return deleted

    def handle_data_change(
        self,
        table_name: str,
        record_id: str | None,
        old_data_json: str | None,
        new_data_json: str | None,
        action: str,
        user_identity: str | None,
    ) -> dict[str, Any]:
        """Apply one record mutation inside a single store transaction.

        Mirrors the store-side procedure contract: payloads arrive as JSON
        text and the resulting row (or the deleted snapshot) is returned.
        """
        normalized = (action or "").upper()
        if normalized not in DATA_CHANGE_ACTIONS:
            raise RemoteOperationError(f"Unsupported data change action: {action}")

        table = self._table(table_name)
        new_data = self._decode_payload(new_data_json)
        old_data = self._decode_payload(old_data_json)

        if normalized == "INSERT":
            if new_data is None:
                raise RemoteOperationError("INSERT requires new data")
            with self._writing("data-change", table_name):
                ids = self._insert(table, [new_data], user_identity)
            self._publish(table_name, normalized, ids)
            return self._ordered(table_name, ids)[0]

        if not record_id:
            raise RemoteOperationError(f"{normalized} requires a record id")

        if normalized == "UPDATE":
            if new_data is None:
                raise RemoteOperationError("UPDATE requires new data")
            with self._writing("data-change", table_name):
                self._update(table, record_id, new_data, user_identity)
            self._publish(table_name, normalized, [record_id])
            return self._ordered(table_name, [record_id])[0]

        with self._writing("data-change", table_name):
            deleted = self._delete(table, [record_id])
            if deleted == 0:
                raise RecordNotFoundError(f"Record {record_id} not found in {table_name}")
        self._publish(table_name, normalized, [record_id])
        return old_data or {"id": record_id}

    def append_audit(self, values: Mapping[str, Any]) -> None:
        table = self._table("audit_logs")
        with self._writing("audit", "audit_logs"):
            payload = self._coerce_values(table, values)
            payload.setdefault("id", str(uuid.uuid4()))
            payload.setdefault("performed_at", _utcnow())
            self.session.execute(insert(table).values(**payload))
        self._publish("audit_logs", "INSERT", [payload["id"]])

    # Internals -------------------------------------------------------------

    def _table(self, table_name: str) -> Table:
        table = self.metadata.tables.get(table_name)
        if table is None:
            raise ConfigurationError(f"Record store has no table named {table_name}")
        return table

    @staticmethod
    def _column(table: Table, name: str):
        if name not in table.c:
            raise ConfigurationError(f"Record store table {table.name} has no column {name}")
        return table.c[name]

    @staticmethod
    def _default_order(table: Table) -> list[Any]:
        # Newest created first, then id; updates never move a row.
        order: list[Any] = []
        if "created_at" in table.c:
            order.append(table.c["created_at"].desc())
        order.append(table.c["id"])
        return order

    @contextmanager
    def _reading(self, operation: str, table_name: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            message = _error_message(exc)
            logger.warning("store:%s:failed table=%s error=%s", operation, table_name, message)
            raise RemoteOperationError(f"Unable to read {table_name}: {message}") from exc

    @contextmanager
    def _writing(self, operation: str, table_name: str) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            message = _error_message(exc)
            logger.warning("store:%s:failed table=%s error=%s", operation, table_name, message)
            raise RemoteOperationError(f"Unable to write {table_name}: {message}") from exc
        except Exception:
            self.session.rollback()
            raise

    def _insert(self, table: Table, rows: Sequence[Mapping[str, Any]], user_identity: str | None) -> list[str]:
        prepared = []
        for row in rows:
            values = self._coerce_values(table, row)
            self._stamp(table, values, user_identity, creating=True)
            prepared.append(values)
        for values in prepared:
            self.session.execute(insert(table).values(**values))
        return [values["id"] for values in prepared]

    def _update(
        self,
        table: Table,
        record_id: str,
        values: Mapping[str, Any],
        user_identity: str | None,
    ) -> None:
        payload = self._coerce_values(table, values)
        payload.pop("id", None)
        self._stamp(table, payload, user_identity, creating=False)
        result = self.session.execute(
            update(table).where(self._column(table, "id") == record_id).values(**payload)
        )
        if result.rowcount == 0:
            raise RecordNotFoundError(f"Record {record_id} not found in {table.name}")

    def _delete(self, table: Table, ids: Sequence[str]) -> int:
        result = self.session.execute(delete(table).where(self._column(table, "id").in_(list(ids))))
        return result.rowcount or 0

    def _ordered(self, table_name: str, ids: Sequence[str]) -> list[dict[str, Any]]:
        rows = {row["id"]: row for row in self.select_rows(table_name, ids=ids)}
        missing = [record_id for record_id in ids if record_id not in rows]
        if missing:
            raise RecordNotFoundError(f"Record {missing[0]} not found in {table_name}")
        return [rows[record_id] for record_id in ids]

    def _publish(self, table_name: str, action: str, ids: Iterable[str]) -> None:
        if self.change_feed is None:
            return
        self.change_feed.publish(
            ChangeEvent(table_name=table_name, action=action, record_ids=tuple(str(item) for item in ids))
        )

    @staticmethod
    def _decode_payload(raw: str | None) -> dict[str, Any] | None:
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise RemoteOperationError("Data change payload is not valid JSON") from exc
        if decoded is None:
            return None
        if not isinstance(decoded, dict):
            raise RemoteOperationError("Data change payload must be a JSON object")
        return decoded

    @staticmethod
    def _stamp(table: Table, values: dict[str, Any], user_identity: str | None, *, creating: bool) -> None:
        now = _utcnow()
        if creating:
            if not values.get("id"):
                values["id"] = str(uuid.uuid4())
            if "created_at" in table.c and values.get("created_at") is None:
                values["created_at"] = now
        if "updated_at" in table.c:
            values["updated_at"] = now
        if "last_modified" in table.c:
            values["last_modified"] = now
        if "modified_by" in table.c and user_identity:
            values["modified_by"] = user_identity

    def _coerce_values(self, table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
        coerced: dict[str, Any] = {}
        for key, value in values.items():
            if key.startswith("_"):
                continue
            column = self._column(table, key)
            coerced[key] = self._coerce(column, value)
        return coerced

    @staticmethod
    def _coerce(column, value: Any) -> Any:
        if value is None:
            return None
        column_type = column.type
        if isinstance(column_type, (DateTime, Date)):
            if isinstance(value, str) and not value.strip():
                return None
            parsed = parse_date_value(value)
            if parsed is None:
                raise RemoteOperationError(f"Invalid date value for {column.name}")
            if isinstance(column_type, DateTime):
                if not isinstance(parsed, datetime):
                    parsed = datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
                return parsed
            return parsed.date() if isinstance(parsed, datetime) else parsed
        if isinstance(column_type, (Float, Numeric, Integer)):
            if isinstance(value, bool):
                raise RemoteOperationError(f"Invalid numeric value for {column.name}")
            if isinstance(value, str):
                if not value.strip():
                    return None
                try:
                    value = float(value)
                except ValueError as exc:
                    raise RemoteOperationError(f"Invalid numeric value for {column.name}") from exc
            if isinstance(column_type, Integer):
                return int(value)
            return value
        if isinstance(column_type, Boolean):
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in TRUE_VALUES:
                    return True
                if lowered in FALSE_VALUES:
                    return False
                raise RemoteOperationError(f"Invalid boolean value for {column.name}")
            return bool(value)
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value if isinstance(value, str) else str(value)

    @staticmethod
    def _serialize_row(row: Mapping[str, Any]) -> dict[str, Any]:
        return {key: to_json_value(value) for key, value in row.items()}

    def _embed(self, rows: list[dict[str, Any]], expansion: ForeignKeyExpansion) -> None:
        references = {row.get(expansion.field) for row in rows} - {None}
        labels: dict[Any, Any] = {}
        if references:
            target = self._table(expansion.table)
            id_column = self._column(target, "id")
            display_column = self._column(target, expansion.display_field)
            stmt = select(id_column, display_column).where(id_column.in_(list(references)))
            for record in self.session.execute(stmt).mappings():
                labels[record["id"]] = to_json_value(record[expansion.display_field])

        for row in rows:
            reference = row.get(expansion.field)
            embedded = row.setdefault(EXPANDED_KEY, {})
            if reference is None or reference not in labels:
                embedded[expansion.field] = None
            else:
                embedded[expansion.field] = {"id": reference, expansion.display_field: labels[reference]}


__all__ = [
    "DATA_CHANGE_ACTIONS",
    "EXPANDED_KEY",
    "ForeignKeyExpansion",
    "RemoteStore",
    "to_json_value",
]
