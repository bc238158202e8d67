import pytest

from app.schemas import FieldType
from app.services.errors import ConfigurationError, RemoteOperationError
from app.services.form_renderer import WidgetKind, coerce_form_value, render_form


ACME_PAYLOAD = {
    "name": "Acme Corp",
    "type": "Multiplier",
    "value": "1.25",
    "effective_date": "2024-01-01",
    "status": "Active",
}


def test_create_form_hides_system_fields(registry):
    form = render_form(registry.find_table("rating_factors"))
    assert [item.name for item in form.inputs()] == ["name", "type", "value", "effective_date", "status"]
    assert form.title == "Add Rating Factors"
    assert form.submit_label == "Create Rating Factors"
    assert form.is_new


def test_edit_form_hides_only_id(registry):
    record = {"id": "rf-1", "name": "Base", "value": 1.0, "last_modified": "2024-01-01T00:00:00", "modified_by": "a@b.c"}
    form = render_form(registry.find_table("rating_factors"), record)
    names = [item.name for item in form.inputs()]
    assert "id" not in names
    assert names[-2:] == ["last_modified", "modified_by"]
    assert form.inputs()[0].value == "Base"
    assert form.title == "Edit Rating Factors"


def test_widgets_follow_field_types(registry):
    form = render_form(registry.find_table("rating_factors"))
    widgets = {item.name: item.widget for item in form.inputs()}
    assert widgets["name"] is WidgetKind.TEXT
    assert widgets["value"] is WidgetKind.NUMBER
    assert widgets["effective_date"] is WidgetKind.DATETIME
    assert widgets["type"] is WidgetKind.SELECT

    type_input = next(item for item in form.inputs() if item.name == "type")
    assert [option.value for option in type_input.options] == ["Multiplier", "Addition", "Percentage", "Fixed"]


def test_foreign_key_options_loaded_once(registry):
    calls = []

    def loader(table, display_field, *, limit):
        calls.append((table, display_field, limit))
        return [{"id": "app-1", "business_name": "Acme Corp"}, {"id": "app-2", "business_name": None}]

    form = render_form(registry.find_table("quotes"), option_loader=loader, option_limit=25)
    form.inputs()
    form.inputs()

    assert calls == [("applications", "business_name", 25)]
    application_input = next(item for item in form.inputs() if item.name == "application_id")
    assert application_input.field_type is FieldType.FOREIGN_KEY
    assert [(option.value, option.label) for option in application_input.options] == [
        ("app-1", "Acme Corp"),
        ("app-2", "app-2"),
    ]


def test_failed_option_load_degrades_to_empty_list(registry, caplog):
    def loader(table, display_field, *, limit):
        raise RemoteOperationError("connection reset")

    form = render_form(registry.find_table("quotes"), option_loader=loader)
    application_input = next(item for item in form.inputs() if item.name == "application_id")
    assert application_input.options == []
    assert "form:options-failed" in caplog.text


def test_submit_validates_before_calling_handler(registry):
    submitted = []
    form = render_form(registry.find_table("rating_factors"), on_submit=submitted.append)

    result = form.submit({"name": "", "value": "abc"})

    assert not result.valid
    assert submitted == []
    assert form.errors["name"] == "name is required"
    assert form.errors["value"] == "value must be a number"
    name_input = next(item for item in form.inputs() if item.name == "name")
    assert name_input.error == "name is required"


def test_submit_coerces_and_drops_unknown_keys(registry):
    submitted = []
    form = render_form(registry.find_table("rating_factors"), on_submit=submitted.append)

    result = form.submit({**ACME_PAYLOAD, "id": "forged", "modified_by": "someone", "bogus": 1})

    assert result.valid
    assert submitted == [
        {
            "name": "Acme Corp",
            "type": "Multiplier",
            "value": 1.25,
            "effective_date": "2024-01-01",
            "status": "Active",
        }
    ]


def test_set_value_rejects_hidden_fields(registry):
    form = render_form(registry.find_table("rating_factors"))
    form.set_value("name", "Territory load")
    assert form.candidate() == {"name": "Territory load"}
    with pytest.raises(ConfigurationError):
        form.set_value("id", "forged")


def test_cancel_discards_edits(registry):
    record = {"id": "rf-1", "name": "Base", "value": 1.0}
    form = render_form(registry.find_table("rating_factors"), record)
    form.set_value("name", "Changed")
    form.cancel()

    assert form.values["name"] == "Base"
    assert record["name"] == "Base"
    with pytest.raises(ConfigurationError):
        form.submit()


def test_coerce_form_value(registry):
    table = registry.find_table("rating_factors")
    assert coerce_form_value(table.get_field("value"), " 2.5 ") == 2.5
    assert coerce_form_value(table.get_field("value"), "") is None
    assert coerce_form_value(table.get_field("value"), "n/a") == "n/a"
    assert coerce_form_value(table.get_field("name"), "Acme") == "Acme"
