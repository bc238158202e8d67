"""Declarative table and field definitions for the record store."""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    FOREIGN_KEY = "foreignKey"


class Cardinality(str, Enum):
    ONE_TO_ONE = "oneToOne"
    ONE_TO_MANY = "oneToMany"
    MANY_TO_MANY = "manyToMany"


class ForeignKeyReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1)
    display_field: str = Field(..., min_length=1)


class ColumnReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1)
    field: str = Field(..., min_length=1)


class FieldDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=63)
    type: FieldType
    required: bool = False
    unique: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    min_length: Optional[int] = Field(None, ge=0)
    max_length: Optional[int] = Field(None, ge=0)
    pattern: Optional[str] = None
    enum_values: Optional[list[str]] = None
    foreign_key: Optional[ForeignKeyReference] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_type_requirements(self) -> "FieldDefinition":
        if self.type is FieldType.ENUM and not self.enum_values:
            raise ValueError(f"Enum field {self.name} must have enum_values")
        if self.enum_values is not None and len(set(self.enum_values)) != len(self.enum_values):
            raise ValueError(f"Enum field {self.name} declares duplicate enum_values")
        if self.type is FieldType.FOREIGN_KEY and self.foreign_key is None:
            raise ValueError(f"Foreign key field {self.name} must declare foreign_key")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Field {self.name} has min greater than max")
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(f"Field {self.name} has min_length greater than max_length")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"Field {self.name} has an invalid pattern: {exc}") from exc
        return self


class ForeignKeyConstraint(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    references: ColumnReference


class TableDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=63)
    display_name: str = Field(..., min_length=1)
    fields: list[FieldDefinition] = Field(..., min_length=1)
    primary_key: list[str] = Field(..., min_length=1)
    unique_constraints: list[list[str]] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyConstraint] = Field(default_factory=list)
    description: Optional[str] = None
    read_only: bool = False

    @model_validator(mode="after")
    def _check_field_references(self) -> "TableDefinition":
        names = [field.name for field in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Table {self.name} declares duplicate field names")
        declared = set(names)

        if len(set(self.primary_key)) != len(self.primary_key):
            raise ValueError(f"Table {self.name} repeats a primary key field")
        missing = [name for name in self.primary_key if name not in declared]
        if missing:
            raise ValueError(f"Table {self.name} primary key references unknown fields: {', '.join(missing)}")

        for constraint in self.unique_constraints:
            unknown = [name for name in constraint if name not in declared]
            if not constraint or unknown:
                raise ValueError(f"Table {self.name} has an invalid unique constraint: {constraint}")

        for foreign_key in self.foreign_keys:
            if foreign_key.field not in declared:
                raise ValueError(
                    f"Table {self.name} foreign key references unknown field {foreign_key.field}"
                )
        return self

    @property
    def field_names(self) -> list[str]:
        return [field.name for field in self.fields]

    def get_field(self, name: str) -> Optional[FieldDefinition]:
        for field in self.fields:
            if field.name == name:
                return field
        return None


class Relationship(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: ColumnReference = Field(..., alias="from")
    to: ColumnReference
    type: Cardinality = Cardinality.ONE_TO_MANY


class DatabaseSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    tables: list[TableDefinition] = Field(..., min_length=1)
    relationships: list[Relationship] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "DatabaseSchema":
        by_name: dict[str, TableDefinition] = {}
        for table in self.tables:
            if table.name in by_name:
                raise ValueError(f"Duplicate table definition: {table.name}")
            by_name[table.name] = table

        def _resolve(reference: ColumnReference, context: str) -> None:
            table = by_name.get(reference.table)
            if table is None or table.get_field(reference.field) is None:
                raise ValueError(f"{context} references unknown column {reference.table}.{reference.field}")

        for relationship in self.relationships:
            _resolve(relationship.from_, "Relationship")
            _resolve(relationship.to, "Relationship")

        for table in self.tables:
            for field in table.fields:
                if field.foreign_key is None:
                    continue
                target = by_name.get(field.foreign_key.table)
                if target is None or target.get_field(field.foreign_key.display_field) is None:
                    raise ValueError(
                        f"Field {table.name}.{field.name} references unknown display column "
                        f"{field.foreign_key.table}.{field.foreign_key.display_field}"
                    )
            for foreign_key in table.foreign_keys:
                _resolve(foreign_key.references, f"Foreign key {table.name}.{foreign_key.field}")
        return self
