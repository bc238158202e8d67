"""Build typed input forms from table definitions and validate their submissions."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from app.constants.system_fields import NON_EDITABLE_FIELD_NAME_SET, SYSTEM_FIELD_NAME_SET
from app.schemas.definitions import FieldDefinition, FieldType, TableDefinition
from app.services.errors import AdminError, ConfigurationError, FieldViolation
from app.services.validation_rules import compile_validator

logger = logging.getLogger(__name__)

TRUE_VALUES = {"true", "t", "yes", "y", "1", "on"}
FALSE_VALUES = {"false", "f", "no", "n", "0", "off"}

DEFAULT_OPTION_LIMIT = 1000


class WidgetKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    DATETIME = "datetime-local"
    SELECT = "select"


_WIDGETS: dict[FieldType, WidgetKind] = {
    FieldType.STRING: WidgetKind.TEXT,
    FieldType.NUMBER: WidgetKind.NUMBER,
    FieldType.BOOLEAN: WidgetKind.CHECKBOX,
    FieldType.DATE: WidgetKind.DATETIME,
    FieldType.ENUM: WidgetKind.SELECT,
    FieldType.FOREIGN_KEY: WidgetKind.SELECT,
}

OptionLoader = Callable[..., list[dict[str, Any]]]
SubmitHandler = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str


@dataclass
class FormInput:
    name: str
    label: str
    field_type: FieldType
    widget: WidgetKind
    required: bool
    value: Any = None
    description: Optional[str] = None
    options: list[SelectOption] = field(default_factory=list)
    constraints: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class FormSubmission:
    valid: bool
    candidate: dict[str, Any]
    violations: list[FieldViolation] = field(default_factory=list)
    result: Any = None


def humanize(name: str) -> str:
    return name.replace("_", " ").strip().capitalize()


def widget_for(definition: FieldDefinition) -> WidgetKind:
    widget = _WIDGETS.get(definition.type)
    if widget is None:
        raise ConfigurationError(f"No input widget for field type: {definition.type}")
    return widget


def visible_fields(table: TableDefinition, *, creating: bool) -> list[FieldDefinition]:
    hidden = SYSTEM_FIELD_NAME_SET if creating else NON_EDITABLE_FIELD_NAME_SET
    return [definition for definition in table.fields if definition.name not in hidden]


def coerce_form_value(definition: FieldDefinition, value: Any) -> Any:
    """Normalise form-encoded scalars; unparseable input is left for the validator."""
    if isinstance(value, str):
        if value.strip() == "":
            return None
        if definition.type is FieldType.NUMBER:
            try:
                return float(value.strip())
            except ValueError:
                return value
        if definition.type is FieldType.BOOLEAN:
            lowered = value.strip().lower()
            if lowered in TRUE_VALUES:
                return True
            if lowered in FALSE_VALUES:
                return False
        return value
    if definition.type is FieldType.DATE and isinstance(value, date):
        return value.isoformat()
    return value


def _constraints(definition: FieldDefinition) -> dict[str, Any]:
    constraints = {
        "min": definition.min,
        "max": definition.max,
        "min_length": definition.min_length,
        "max_length": definition.max_length,
        "pattern": definition.pattern,
    }
    return {key: value for key, value in constraints.items() if value is not None}


class DynamicForm:
    """One open create/edit form; holds local edits until submitted or cancelled."""

    def __init__(
        self,
        table: TableDefinition,
        existing_record: Optional[Mapping[str, Any]] = None,
        *,
        option_loader: Optional[OptionLoader] = None,
        on_submit: Optional[SubmitHandler] = None,
        option_limit: int = DEFAULT_OPTION_LIMIT,
    ) -> None:
        self.table = table
        self.existing_record = copy.deepcopy(dict(existing_record)) if existing_record is not None else None
        self.on_submit = on_submit
        self.fields = visible_fields(table, creating=self.is_new)
        self._by_name = {definition.name: definition for definition in self.fields}
        self.validator = compile_validator(table, fields=self._by_name.keys())

        initial: dict[str, Any] = {}
        if self.existing_record is not None:
            for name in self._by_name:
                if name in self.existing_record:
                    initial[name] = copy.deepcopy(self.existing_record[name])
        self._initial = initial
        self.values: dict[str, Any] = copy.deepcopy(initial)
        self.errors: dict[str, str] = {}
        self.closed = False
        self.options = self._load_options(option_loader, option_limit)

    @property
    def is_new(self) -> bool:
        return self.existing_record is None

    @property
    def title(self) -> str:
        return f"{'Add' if self.is_new else 'Edit'} {self.table.display_name}"

    @property
    def submit_label(self) -> str:
        return f"{'Create' if self.is_new else 'Update'} {self.table.display_name}"

    def _load_options(self, loader: Optional[OptionLoader], limit: int) -> dict[str, list[SelectOption]]:
        options: dict[str, list[SelectOption]] = {}
        for definition in self.fields:
            if definition.type is FieldType.ENUM:
                options[definition.name] = [
                    SelectOption(value=item, label=item) for item in definition.enum_values or ()
                ]
            elif definition.type is FieldType.FOREIGN_KEY:
                options[definition.name] = self._load_foreign_options(definition, loader, limit)
        return options

    def _load_foreign_options(
        self,
        definition: FieldDefinition,
        loader: Optional[OptionLoader],
        limit: int,
    ) -> list[SelectOption]:
        reference = definition.foreign_key
        if loader is None or reference is None:
            return []
        try:
            rows = loader(reference.table, reference.display_field, limit=limit)
        except AdminError as exc:
            logger.warning(
                "form:options-failed table=%s field=%s target=%s error=%s",
                self.table.name,
                definition.name,
                reference.table,
                exc,
            )
            return []
        loaded = []
        for row in rows:
            record_id = row.get("id")
            if record_id is None:
                continue
            label = row.get(reference.display_field)
            loaded.append(SelectOption(value=str(record_id), label=str(label if label is not None else record_id)))
        return loaded

    def inputs(self) -> list[FormInput]:
        rendered = []
        for definition in self.fields:
            rendered.append(
                FormInput(
                    name=definition.name,
                    label=humanize(definition.name),
                    field_type=definition.type,
                    widget=widget_for(definition),
                    required=definition.required,
                    value=self.values.get(definition.name),
                    description=definition.description,
                    options=list(self.options.get(definition.name, [])),
                    constraints=_constraints(definition),
                    error=self.errors.get(definition.name),
                )
            )
        return rendered

    def set_value(self, name: str, value: Any) -> None:
        self._ensure_open()
        if name not in self._by_name:
            raise ConfigurationError(f"Field {name} is not editable on {self.table.name}")
        self.values[name] = value

    def candidate(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name, definition in self._by_name.items():
            if name not in self.values:
                continue
            value = coerce_form_value(definition, self.values[name])
            if value is None and self.is_new:
                continue
            result[name] = value
        return result

    def submit(self, payload: Optional[Mapping[str, Any]] = None) -> FormSubmission:
        """Validate the edited values and hand the candidate to ``on_submit``.

        Keys outside the visible field set are dropped. ``on_submit`` is only
        called for a valid candidate.
        """
        self._ensure_open()
        if payload is not None:
            for name, value in payload.items():
                if name in self._by_name:
                    self.values[name] = value

        candidate = self.candidate()
        validation = self.validator.validate(candidate)
        self.errors = validation.errors_by_field()
        if not validation.valid:
            logger.info(
                "form:invalid table=%s fields=%s",
                self.table.name,
                ",".join(item.field for item in validation.violations),
            )
            return FormSubmission(valid=False, candidate=candidate, violations=list(validation.violations))

        result = self.on_submit(candidate) if self.on_submit is not None else None
        return FormSubmission(valid=True, candidate=candidate, result=result)

    def cancel(self) -> None:
        self.values = copy.deepcopy(self._initial)
        self.errors = {}
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise ConfigurationError(f"Form for {self.table.name} has been closed")


def render_form(
    table: TableDefinition,
    existing_record: Optional[Mapping[str, Any]] = None,
    *,
    option_loader: Optional[OptionLoader] = None,
    on_submit: Optional[SubmitHandler] = None,
    option_limit: int = DEFAULT_OPTION_LIMIT,
) -> DynamicForm:
    return DynamicForm(
        table,
        existing_record,
        option_loader=option_loader,
        on_submit=on_submit,
        option_limit=option_limit,
    )


__all__ = [
    "DynamicForm",
    "FormInput",
    "FormSubmission",
    "SelectOption",
    "WidgetKind",
    "coerce_form_value",
    "render_form",
    "visible_fields",
]
