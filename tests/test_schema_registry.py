import pytest

from app.schemas import Cardinality, FieldType
from app.services.errors import ConfigurationError
from app.services.schema_registry import SchemaRegistry


def _document(**overrides):
    document = {
        "tables": [
            {
                "name": "parents",
                "display_name": "Parents",
                "primary_key": ["id"],
                "fields": [
                    {"name": "id", "type": "string", "required": True},
                    {"name": "label", "type": "string"},
                ],
            },
            {
                "name": "children",
                "display_name": "Children",
                "primary_key": ["id"],
                "fields": [
                    {"name": "id", "type": "string", "required": True},
                    {
                        "name": "parent_ref",
                        "type": "foreignKey",
                        "foreign_key": {"table": "parents", "display_field": "label"},
                    },
                ],
            },
        ],
        "relationships": [
            {
                "from": {"table": "children", "field": "parent_ref"},
                "to": {"table": "parents", "field": "id"},
                "type": "oneToMany",
            }
        ],
    }
    document.update(overrides)
    return document


def test_packaged_schema_lists_tables_in_declaration_order(registry):
    names = [table.name for table in registry.list_tables()]
    assert names == [
        "applications",
        "audit_logs",
        "class_codes",
        "health_check",
        "premium_rules",
        "quotes",
        "rating_factors",
        "rating_tables",
        "state_factors",
        "territories",
        "verified_business_names",
    ]


def test_find_table_returns_definition(registry):
    table = registry.find_table("rating_factors")
    assert table.display_name == "Rating Factors"
    assert table.field_names[:3] == ["id", "name", "type"]
    assert table.get_field("value").type is FieldType.NUMBER


def test_find_table_unknown_name_raises(registry):
    with pytest.raises(ConfigurationError) as exc_info:
        registry.find_table("policies")
    assert "Unknown table: policies" in str(exc_info.value)


def test_audit_logs_are_read_only(registry):
    assert registry.find_table("audit_logs").read_only is True
    assert registry.find_table("applications").read_only is False


def test_relationships_to_uses_declared_columns(registry):
    relationships = registry.relationships_to("applications")
    assert len(relationships) == 1
    relationship = relationships[0]
    assert relationship.from_.table == "quotes"
    assert relationship.from_.field == "application_id"
    assert relationship.to.field == "id"
    assert relationship.type is Cardinality.ONE_TO_MANY
    assert registry.relationships_to("quotes") == []


def test_from_mapping_accepts_from_alias():
    registry = SchemaRegistry.from_mapping(_document())
    assert registry.relationships_to("parents")[0].from_.field == "parent_ref"


def test_enum_field_without_values_is_rejected():
    document = _document()
    document["tables"][0]["fields"].append({"name": "status", "type": "enum"})
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_mapping(document)


def test_invalid_pattern_is_a_configuration_error():
    document = _document()
    document["tables"][0]["fields"].append({"name": "code", "type": "string", "pattern": "[A-Z"})
    with pytest.raises(ConfigurationError) as exc_info:
        SchemaRegistry.from_mapping(document)
    assert "invalid pattern" in str(exc_info.value)


def test_relationship_to_unknown_column_is_rejected():
    document = _document(
        relationships=[
            {
                "from": {"table": "children", "field": "missing"},
                "to": {"table": "parents", "field": "id"},
            }
        ]
    )
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_mapping(document)


def test_duplicate_table_names_are_rejected():
    document = _document()
    document["tables"].append(dict(document["tables"][0]))
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_mapping(document)


def test_primary_key_must_name_declared_fields():
    document = _document()
    document["tables"][0]["primary_key"] = ["uuid"]
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_mapping(document)


def test_unique_constraint_must_name_declared_fields():
    document = _document()
    document["tables"][0]["unique_constraints"] = [["label", "missing"]]
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_mapping(document)


def test_from_yaml_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_yaml(tmp_path / "absent.yaml")


def test_from_yaml_rejects_non_mapping(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        SchemaRegistry.from_yaml(path)


def test_from_yaml_reads_document(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text(
        "tables:\n"
        "  - name: notes\n"
        "    display_name: Notes\n"
        "    primary_key: [id]\n"
        "    fields:\n"
        "      - {name: id, type: string, required: true}\n"
        "      - {name: body, type: string, max_length: 280}\n",
        encoding="utf-8",
    )
    registry = SchemaRegistry.from_yaml(path)
    assert registry.find_table("notes").get_field("body").max_length == 280
