"""Static registry of the tables the console can manage."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from app.config import get_settings
from app.schemas.definitions import DatabaseSchema, Relationship, TableDefinition
from app.services.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parents[1] / "constants" / "insurance_schema.yaml"


class SchemaRegistry:
    """Read-only lookup over a validated :class:`DatabaseSchema`."""

    def __init__(self, schema: DatabaseSchema) -> None:
        self._schema = schema
        self._tables = {table.name: table for table in schema.tables}

    @classmethod
    def from_mapping(cls, document: Mapping[str, Any]) -> "SchemaRegistry":
        try:
            schema = DatabaseSchema.model_validate(document)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid schema definition: {exc}") from exc
        return cls(schema)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "SchemaRegistry":
        schema_path = Path(path)
        try:
            document = yaml.safe_load(schema_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(f"Unable to read schema file {schema_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Schema file {schema_path} is not valid YAML: {exc}") from exc

        if not isinstance(document, Mapping):
            raise ConfigurationError(f"Schema file {schema_path} must contain a mapping")

        registry = cls.from_mapping(document)
        logger.info(
            "schema:load path=%s tables=%d relationships=%d",
            schema_path,
            len(registry.schema.tables),
            len(registry.schema.relationships),
        )
        return registry

    @property
    def schema(self) -> DatabaseSchema:
        return self._schema

    def list_tables(self) -> list[TableDefinition]:
        return list(self._schema.tables)

    def find_table(self, name: str) -> TableDefinition:
        table = self._tables.get(name)
        if table is None:
            raise ConfigurationError(f"Unknown table: {name}")
        return table

    def relationships_to(self, table_name: str) -> list[Relationship]:
        self.find_table(table_name)
        return [item for item in self._schema.relationships if item.to.table == table_name]


@lru_cache()
def get_schema_registry() -> SchemaRegistry:
    settings = get_settings()
    return SchemaRegistry.from_yaml(settings.schema_path or DEFAULT_SCHEMA_PATH)


__all__ = ["DEFAULT_SCHEMA_PATH", "SchemaRegistry", "get_schema_registry"]
