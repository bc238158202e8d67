"""In-memory sortable, filterable, paginated grid with row selection."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from app.constants.system_fields import RECORD_ID_FIELD
from app.schemas.definitions import TableDefinition

PAGE_SIZE_OPTIONS = (10, 20, 30, 40, 50)
DEFAULT_PAGE_SIZE = 10

Row = Mapping[str, Any]
RowsHandler = Callable[[list[Row]], Any]
RowHandler = Callable[[Row], Any]


@dataclass(frozen=True)
class GridColumn:
    key: str
    header: str
    sortable: bool = True


@dataclass(frozen=True)
class SortState:
    column: str
    descending: bool = False


@dataclass
class GridPage:
    rows: list[Row]
    total_rows: int
    filtered_rows: int
    page_index: int
    page_count: int
    page_size: int
    can_previous_page: bool
    can_next_page: bool
    sort: Optional[SortState]
    global_filter: str
    selected_keys: list[Any] = field(default_factory=list)


def columns_for_table(table: TableDefinition) -> list[GridColumn]:
    return [
        GridColumn(key=definition.name, header=definition.name.replace("_", " ").title())
        for definition in table.fields
        if definition.name != RECORD_ID_FIELD
    ]


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, value)
    if isinstance(value, (datetime, date)):
        return (1, value.isoformat())
    return (1, str(value).lower())


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class DataGrid:
    """Presentation state for a row sequence; never talks to the record store."""

    def __init__(
        self,
        columns: Sequence[GridColumn],
        rows: Iterable[Row] = (),
        *,
        row_key: str = RECORD_ID_FIELD,
        page_size: int = DEFAULT_PAGE_SIZE,
        on_edit: Optional[RowHandler] = None,
        on_delete: Optional[RowsHandler] = None,
    ) -> None:
        if page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(f"Page size must be one of {PAGE_SIZE_OPTIONS}")
        self.columns = list(columns)
        self._column_keys = {column.key for column in self.columns}
        self.row_key = row_key
        self.on_edit = on_edit
        self.on_delete = on_delete
        self.page_size = page_size
        self.page_index = 0
        self.sort: Optional[SortState] = None
        self.global_filter = ""
        self._selected: set[Any] = set()
        self._rows: list[Row] = []
        self.set_rows(rows)

    # Data ------------------------------------------------------------------

    @property
    def rows(self) -> list[Row]:
        return list(self._rows)

    def set_rows(self, rows: Iterable[Row]) -> None:
        self._rows = list(rows)
        present = {self._key(row) for row in self._rows}
        self._selected &= present
        self._clamp_page()

    def _key(self, row: Row) -> Any:
        return row.get(self.row_key)

    # Sorting ---------------------------------------------------------------

    def sort_by(self, column: str, descending: bool = False) -> None:
        self._require_column(column)
        self.sort = SortState(column=column, descending=descending)

    def toggle_sort(self, column: str) -> SortState:
        self._require_column(column)
        if self.sort is not None and self.sort.column == column:
            self.sort = SortState(column=column, descending=not self.sort.descending)
        else:
            self.sort = SortState(column=column, descending=False)
        return self.sort

    def clear_sort(self) -> None:
        self.sort = None

    def _require_column(self, column: str) -> None:
        if column not in self._column_keys:
            raise ValueError(f"Unknown column: {column}")
        if not next(item for item in self.columns if item.key == column).sortable:
            raise ValueError(f"Column {column} is not sortable")

    # Filtering -------------------------------------------------------------

    def set_global_filter(self, query: Optional[str]) -> None:
        self.global_filter = query or ""
        self.page_index = 0

    def _matches(self, row: Row, needle: str) -> bool:
        return any(needle in _cell_text(row.get(column.key)).lower() for column in self.columns)

    def visible_rows(self) -> list[Row]:
        """Rows after filtering and sorting, before pagination."""
        needle = self.global_filter.lower()
        rows = [row for row in self._rows if self._matches(row, needle)] if needle else list(self._rows)
        if self.sort is None:
            return rows

        column = self.sort.column
        present = [row for row in rows if row.get(column) is not None]
        missing = [row for row in rows if row.get(column) is None]
        # sorted() is stable with reverse=True as well, so ties keep input order.
        ordered = sorted(present, key=lambda row: _sort_key(row.get(column)), reverse=self.sort.descending)
        return ordered + missing

    # Pagination ------------------------------------------------------------

    @property
    def page_count(self) -> int:
        return math.ceil(len(self.visible_rows()) / self.page_size)

    @property
    def can_previous_page(self) -> bool:
        return self.page_index > 0

    @property
    def can_next_page(self) -> bool:
        return self.page_index + 1 < self.page_count

    def set_page_size(self, size: int) -> None:
        if size not in PAGE_SIZE_OPTIONS:
            raise ValueError(f"Page size must be one of {PAGE_SIZE_OPTIONS}")
        self.page_size = size
        self.page_index = 0

    def go_to_page(self, index: int) -> None:
        self.page_index = max(0, min(index, self.page_count - 1))

    def first_page(self) -> None:
        if self.can_previous_page:
            self.page_index = 0

    def previous_page(self) -> None:
        if self.can_previous_page:
            self.page_index -= 1

    def next_page(self) -> None:
        if self.can_next_page:
            self.page_index += 1

    def last_page(self) -> None:
        if self.can_next_page:
            self.page_index = self.page_count - 1

    def _clamp_page(self) -> None:
        self.page_index = max(0, min(self.page_index, self.page_count - 1))

    def page_rows(self) -> list[Row]:
        start = self.page_index * self.page_size
        return self.visible_rows()[start : start + self.page_size]

    # Selection -------------------------------------------------------------

    def is_selected(self, row: Row) -> bool:
        return self._key(row) in self._selected

    @property
    def is_all_selected(self) -> bool:
        return bool(self._rows) and all(self._key(row) in self._selected for row in self._rows)

    def toggle_row(self, key: Any) -> bool:
        if key not in {self._key(row) for row in self._rows}:
            raise ValueError(f"Unknown row: {key}")
        if key in self._selected:
            self._selected.discard(key)
            return False
        self._selected.add(key)
        return True

    def toggle_all(self) -> None:
        if self.is_all_selected:
            self._selected.clear()
        else:
            self._selected = {self._key(row) for row in self._rows}

    def clear_selection(self) -> None:
        self._selected.clear()

    @property
    def selected_rows(self) -> list[Row]:
        return [row for row in self._rows if self._key(row) in self._selected]

    # Actions ---------------------------------------------------------------

    @property
    def can_delete_selected(self) -> bool:
        return bool(self._selected) and self.on_delete is not None

    def edit(self, row: Row) -> Any:
        if self.on_edit is None:
            return None
        return self.on_edit(row)

    def delete(self, row: Row) -> Any:
        if self.on_delete is None:
            return None
        return self.on_delete([row])

    def delete_selected(self) -> Any:
        if not self.can_delete_selected:
            return None
        return self.on_delete(self.selected_rows)

    def snapshot(self) -> GridPage:
        visible = self.visible_rows()
        start = self.page_index * self.page_size
        return GridPage(
            rows=visible[start : start + self.page_size],
            total_rows=len(self._rows),
            filtered_rows=len(visible),
            page_index=self.page_index,
            page_count=self.page_count,
            page_size=self.page_size,
            can_previous_page=self.can_previous_page,
            can_next_page=self.can_next_page,
            sort=self.sort,
            global_filter=self.global_filter,
            selected_keys=[self._key(row) for row in self.selected_rows],
        )


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "PAGE_SIZE_OPTIONS",
    "DataGrid",
    "GridColumn",
    "GridPage",
    "SortState",
    "columns_for_table",
]
