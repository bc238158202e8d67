"""CSV export and import for console tables."""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.constants.system_fields import SYSTEM_FIELD_NAME_SET
from app.schemas.definitions import FieldType, TableDefinition
from app.services.errors import AdminError

logger = logging.getLogger(__name__)

# Positional column layouts, used when the header does not name the columns.
IMPORT_LAYOUTS: dict[str, tuple[str, ...]] = {
    "rating_factors": ("name", "type", "value", "effective_date", "status"),
    "class_codes": ("code", "description", "industry_group", "hazard_level", "status"),
    "state_factors": ("state_code", "state_name", "base_rate", "effective_date", "status"),
}

_NULL_TOKENS = {"null", "none", "nan"}
_TRUE_TOKENS = {"true", "t", "yes", "y", "1"}
_FALSE_TOKENS = {"false", "f", "no", "n", "0"}


class CsvImportError(AdminError):
    """The uploaded file cannot be mapped onto the table."""


@dataclass
class ParsedImport:
    table_name: str
    columns: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    skipped_cells: int = 0


def export_columns(table: TableDefinition) -> list[str]:
    return list(table.field_names)


def _export_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def export_csv(table: TableDefinition, rows: Iterable[Mapping[str, Any]]) -> str:
    """Render rows as CSV text: a header row then one line per record."""
    columns = export_columns(table)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({column: _export_cell(row.get(column)) for column in columns})
    return buffer.getvalue()


def export_filename(table: TableDefinition, today: Optional[date] = None) -> str:
    stamp = (today or date.today()).isoformat()
    return f"{table.name}_{stamp}.csv"


def decode_upload(data: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CsvImportError("Unable to decode file. Use UTF-8 encoding.")


def _normalize_cell(value: str) -> Optional[str]:
    trimmed = value.strip()
    if not trimmed or trimmed.lower() in _NULL_TOKENS:
        return None
    return trimmed


def _parse_number(value: str) -> Optional[float]:
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _parse_boolean(value: str) -> Optional[bool]:
    lowered = value.lower()
    if lowered in _TRUE_TOKENS:
        return True
    if lowered in _FALSE_TOKENS:
        return False
    return None


def _header_columns(table: TableDefinition, header: Sequence[str]) -> list[Optional[str]]:
    known = set(table.field_names) - SYSTEM_FIELD_NAME_SET
    resolved: list[Optional[str]] = []
    for cell in header:
        name = cell.strip().lower().replace(" ", "_")
        resolved.append(name if name in known else None)
    return resolved


def _resolve_columns(table: TableDefinition, header: Sequence[str]) -> list[Optional[str]]:
    resolved = _header_columns(table, header)
    layout = IMPORT_LAYOUTS.get(table.name)
    if layout is not None:
        # Exported files name every layout column; anything else is positional.
        if set(layout) <= set(resolved):
            return resolved
        return list(layout)

    if not any(resolved):
        raise CsvImportError(f"Header row does not name any {table.display_name.lower()} columns.")
    return resolved


def parse_import(table: TableDefinition, content: str | bytes) -> ParsedImport:
    """Turn CSV content into candidate records for ``table``.

    The first row is always a header and columns are mapped by header name.
    Tables with a registered layout fall back to reading by position when the
    header does not name every layout column.
    Blank cells and numbers or booleans that do not parse are left out of
    the record so validation reports them.
    """
    text_data = decode_upload(content) if isinstance(content, bytes) else content
    reader = csv.reader(io.StringIO(text_data))
    raw_rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not raw_rows:
        raise CsvImportError("Uploaded file contains no data.")

    header, data_rows = raw_rows[0], raw_rows[1:]
    columns = _resolve_columns(table, header)
    parsed = ParsedImport(table_name=table.name, columns=[column for column in columns if column])

    for row in data_rows:
        record: dict[str, Any] = {}
        for index, column in enumerate(columns):
            if column is None or index >= len(row):
                continue
            cell = _normalize_cell(row[index])
            if cell is None:
                continue
            definition = table.get_field(column)
            value: Any = cell
            if definition is not None and definition.type is FieldType.NUMBER:
                value = _parse_number(cell)
            elif definition is not None and definition.type is FieldType.BOOLEAN:
                value = _parse_boolean(cell)
            if value is None:
                parsed.skipped_cells += 1
                continue
            record[column] = value
        parsed.rows.append(record)

    logger.info(
        "csv:parsed table=%s rows=%d skipped_cells=%d",
        table.name,
        len(parsed.rows),
        parsed.skipped_cells,
    )
    return parsed


__all__ = [
    "IMPORT_LAYOUTS",
    "CsvImportError",
    "ParsedImport",
    "decode_upload",
    "export_columns",
    "export_csv",
    "export_filename",
    "parse_import",
]
