"""
Compile declarative field definitions into record validators.

Each field type maps to a rule builder producing the checks for one field:
- string: required, min_length/max_length (inclusive), pattern (full match)
- number: required (zero is present), min/max (inclusive)
- boolean: type only
- date: ISO calendar date or date-time
- enum: membership in enum_values
- foreignKey: non-empty identifier; existence is left to the record store
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional
from uuid import UUID

from app.schemas.definitions import FieldDefinition, FieldType, TableDefinition
from app.services.errors import ConfigurationError, FieldViolation

FieldCheck = Callable[[Any], Optional[str]]


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, Decimal)):
        return True
    return isinstance(value, float) and math.isfinite(value)


def parse_date_value(value: Any) -> date | datetime | None:
    """Return the parsed calendar value, or ``None`` when it does not parse."""
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    if candidate[-1] in "zZ":
        candidate = f"{candidate[:-1]}+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        pass
    try:
        return date.fromisoformat(candidate)
    except ValueError:
        return None


def _format_bound(value: float) -> str:
    return f"{value:g}"


def _string_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name
    checks: list[FieldCheck] = [
        lambda value: None if isinstance(value, str) else f"{name} must be text",
    ]
    if definition.min_length is not None:
        minimum = definition.min_length
        checks.append(
            lambda value: None
            if len(value) >= minimum
            else f"{name} must be at least {minimum} characters"
        )
    if definition.max_length is not None:
        maximum = definition.max_length
        checks.append(
            lambda value: None
            if len(value) <= maximum
            else f"{name} exceeds maximum length of {maximum}"
        )
    if definition.pattern is not None:
        compiled = re.compile(definition.pattern)
        checks.append(
            lambda value: None
            if compiled.fullmatch(value)
            else f"{name} does not match the required format"
        )
    return checks


def _number_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name
    checks: list[FieldCheck] = [
        lambda value: None if is_number(value) else f"{name} must be a number",
    ]
    if definition.min is not None:
        minimum = definition.min
        checks.append(
            lambda value: None
            if value >= minimum
            else f"{name} must be at least {_format_bound(minimum)}"
        )
    if definition.max is not None:
        maximum = definition.max
        checks.append(
            lambda value: None
            if value <= maximum
            else f"{name} must be at most {_format_bound(maximum)}"
        )
    return checks


def _boolean_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name
    return [lambda value: None if isinstance(value, bool) else f"{name} must be true or false"]


def _date_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name
    return [
        lambda value: None
        if parse_date_value(value) is not None
        else f"{name} must be a valid date"
    ]


def _enum_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name
    allowed = tuple(definition.enum_values or ())
    message = f"{name} must be one of: {', '.join(allowed)}"
    return [lambda value: None if value in allowed else message]


def _foreign_key_rules(definition: FieldDefinition) -> list[FieldCheck]:
    name = definition.name

    def _check(value: Any) -> Optional[str]:
        if isinstance(value, UUID):
            return None
        if isinstance(value, int) and not isinstance(value, bool):
            return None
        if isinstance(value, str) and value.strip():
            return None
        return f"{name} must reference a record"

    return [_check]


_RULE_BUILDERS: dict[FieldType, Callable[[FieldDefinition], list[FieldCheck]]] = {
    FieldType.STRING: _string_rules,
    FieldType.NUMBER: _number_rules,
    FieldType.BOOLEAN: _boolean_rules,
    FieldType.DATE: _date_rules,
    FieldType.ENUM: _enum_rules,
    FieldType.FOREIGN_KEY: _foreign_key_rules,
}


@dataclass(frozen=True)
class CompiledField:
    name: str
    required: bool
    checks: tuple[FieldCheck, ...]

    def evaluate(self, record: Mapping[str, Any]) -> Optional[str]:
        value = record.get(self.name)
        if is_blank(value):
            return f"{self.name} is required" if self.required else None
        # Checks run in order and stop at the first failure, so later checks
        # can rely on the type check having passed.
        for check in self.checks:
            message = check(value)
            if message:
                return message
        return None


@dataclass
class ValidationResult:
    violations: list[FieldViolation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.violations

    def errors_by_field(self) -> dict[str, str]:
        return {item.field: item.message for item in self.violations}


class TableValidator:
    """Validate candidate records against one table's compiled field rules."""

    def __init__(self, table_name: str, fields: Iterable[CompiledField]) -> None:
        self.table_name = table_name
        self.fields = tuple(fields)

    @property
    def field_names(self) -> list[str]:
        return [item.name for item in self.fields]

    def validate(self, record: Mapping[str, Any]) -> ValidationResult:
        result = ValidationResult()
        for compiled in self.fields:
            message = compiled.evaluate(record)
            if message:
                result.violations.append(FieldViolation(field=compiled.name, message=message))
        return result


def compile_field(definition: FieldDefinition) -> CompiledField:
    builder = _RULE_BUILDERS.get(definition.type)
    if builder is None:
        raise ConfigurationError(f"Unsupported field type: {definition.type}")
    return CompiledField(
        name=definition.name,
        required=definition.required,
        checks=tuple(builder(definition)),
    )


def compile_validator(table: TableDefinition, fields: Iterable[str] | None = None) -> TableValidator:
    """Build a validator for ``table``, optionally limited to ``fields``."""
    if fields is None:
        selected = list(table.fields)
    else:
        wanted = set(fields)
        unknown = wanted.difference(table.field_names)
        if unknown:
            raise ConfigurationError(
                f"Unknown fields for table {table.name}: {', '.join(sorted(unknown))}"
            )
        selected = [definition for definition in table.fields if definition.name in wanted]
    return TableValidator(table.name, (compile_field(definition) for definition in selected))


__all__ = [
    "CompiledField",
    "TableValidator",
    "ValidationResult",
    "compile_field",
    "compile_validator",
    "is_blank",
    "is_number",
    "parse_date_value",
]
