import pytest

from app.services.audit_logger import decode_snapshot
from app.services.errors import (
    ConfigurationError,
    DependencyConflictError,
    OperationNotPermittedError,
    RecordNotFoundError,
    RecordValidationError,
    RemoteOperationError,
)
from app.services.table_orchestrator import ViewState

TEST_USER_EMAIL = "underwriter@example.com"

ACME = {
    "name": "Acme Corp",
    "type": "Multiplier",
    "value": 1.25,
    "effective_date": "2024-01-01",
    "status": "Active",
}


def _audit_entries(store, table_name=None):
    rows = store.select_rows("audit_logs")
    if table_name is not None:
        rows = [row for row in rows if row["table_name"] == table_name]
    return rows


def _create_application(make_orchestrator, name="Acme Corp"):
    result = make_orchestrator("applications").create(
        {"business_name": name, "effective_date": "2024-01-01", "status": "Draft"}
    )
    assert result.success, result.message
    return result.records[0]


def _create_quote(make_orchestrator, application_id):
    result = make_orchestrator("quotes").create(
        {"application_id": application_id, "premium_amount": 1200, "valid_until": "2024-12-31"}
    )
    assert result.success, result.message
    return result.records[0]


def test_unknown_table_fails_fast(make_orchestrator):
    with pytest.raises(ConfigurationError):
        make_orchestrator("policies")


def test_load_moves_to_ready(make_orchestrator, store):
    store.insert_rows("rating_factors", [ACME])
    orchestrator = make_orchestrator("rating_factors")
    assert orchestrator.state is ViewState.IDLE

    result = orchestrator.load()

    assert result.success
    assert orchestrator.state is ViewState.READY
    assert [row["name"] for row in orchestrator.records] == ["Acme Corp"]


def test_load_failure_keeps_stale_rows(make_orchestrator, store, monkeypatch):
    store.insert_rows("rating_factors", [ACME])
    orchestrator = make_orchestrator("rating_factors")
    orchestrator.load()

    def unavailable(*args, **kwargs):
        raise RemoteOperationError("connection refused")

    monkeypatch.setattr(store, "select_rows", unavailable)
    result = orchestrator.load()

    assert not result.success
    assert orchestrator.state is ViewState.LOAD_ERROR
    assert orchestrator.stale is True
    assert len(orchestrator.records) == 1
    assert orchestrator.notifications[-1].level == "error"
    assert orchestrator.notifications[-1].message == "Failed to load rating factors"


def test_create_writes_one_insert_audit_entry(make_orchestrator, store):
    orchestrator = make_orchestrator("rating_factors")

    result = orchestrator.create(ACME)

    assert result.success
    assert result.message == "Rating Factors created successfully"
    entries = _audit_entries(store, "rating_factors")
    assert len(entries) == 1
    entry = entries[0]
    assert entry["action"] == "INSERT"
    assert entry["record_id"] == result.records[0]["id"]
    assert entry["performed_by"] == TEST_USER_EMAIL
    assert entry["old_data"] is None
    assert decode_snapshot(entry["new_data"])["value"] == 1.25
    assert orchestrator.state is ViewState.READY
    assert len(orchestrator.records) == 1


def test_invalid_create_never_reaches_the_store(make_orchestrator, store):
    orchestrator = make_orchestrator("rating_factors")

    result = orchestrator.create({"name": "", "value": 1.25})

    assert not result.success
    assert isinstance(result.error, RecordValidationError)
    assert {item.field for item in result.violations} == {"name", "effective_date"}
    assert store.select_rows("rating_factors") == []
    assert _audit_entries(store) == []


def test_create_without_user_skips_audit(make_orchestrator, store):
    result = make_orchestrator("rating_factors", user=None).create(ACME)

    assert result.success
    assert len(store.select_rows("rating_factors")) == 1
    assert _audit_entries(store) == []


def test_create_store_failure_is_reported(make_orchestrator, store, monkeypatch):
    orchestrator = make_orchestrator("rating_factors")

    def failing(*args, **kwargs):
        raise RemoteOperationError("timeout")

    monkeypatch.setattr(store, "handle_data_change", failing)
    result = orchestrator.create(ACME)

    assert not result.success
    assert result.message == "Failed to save rating factors"
    assert isinstance(result.error, RemoteOperationError)
    assert _audit_entries(store) == []


def test_update_captures_pre_edit_snapshot(make_orchestrator, store):
    created = make_orchestrator("rating_factors").create(ACME).records[0]
    before = store.select_rows("rating_factors", ids=[created["id"]])[0]

    orchestrator = make_orchestrator("rating_factors")
    orchestrator.load()
    result = orchestrator.update(created["id"], {"value": 2.0})

    assert result.success
    assert result.records[0]["value"] == 2.0
    updates = [entry for entry in _audit_entries(store) if entry["action"] == "UPDATE"]
    assert len(updates) == 1
    assert decode_snapshot(updates[0]["old_data"]) == before
    assert decode_snapshot(updates[0]["new_data"])["value"] == 2.0


def test_update_validation_failure(make_orchestrator, store):
    created = make_orchestrator("rating_factors").create(ACME).records[0]

    result = make_orchestrator("rating_factors").update(created["id"], {"type": "Bogus"})

    assert not result.success
    assert [item.field for item in result.violations] == ["type"]
    assert store.select_rows("rating_factors")[0]["type"] == "Multiplier"


def test_update_missing_record(make_orchestrator):
    result = make_orchestrator("rating_factors").update("missing", {"value": 2.0})
    assert not result.success
    assert isinstance(result.error, RecordNotFoundError)


def test_delete_blocked_by_dependents(make_orchestrator, store):
    application = _create_application(make_orchestrator)
    _create_quote(make_orchestrator, application["id"])
    orchestrator = make_orchestrator("applications")

    result = orchestrator.delete([application["id"]])

    assert not result.success
    assert isinstance(result.error, DependencyConflictError)
    assert result.error.table_name == "quotes"
    assert result.error.count == 1
    assert result.message == "Cannot delete: This applications is referenced by 1 records in quotes"
    assert len(store.select_rows("applications")) == 1
    assert not [entry for entry in _audit_entries(store) if entry["action"] == "DELETE"]


def test_batch_delete_is_all_or_nothing(make_orchestrator, store):
    referenced = _create_application(make_orchestrator, "Referenced")
    free = _create_application(make_orchestrator, "Free")
    _create_quote(make_orchestrator, referenced["id"])

    result = make_orchestrator("applications").delete([free["id"], referenced["id"]])

    assert not result.success
    assert len(store.select_rows("applications")) == 2


def test_delete_writes_one_entry_per_record(make_orchestrator, store):
    orchestrator = make_orchestrator("rating_factors")
    first = orchestrator.create(ACME).records[0]
    second = orchestrator.create(dict(ACME, name="Beta LLC")).records[0]

    result = orchestrator.delete([first["id"], second["id"]])

    assert result.success
    assert result.count == 2
    assert store.select_rows("rating_factors") == []
    deletes = [entry for entry in _audit_entries(store) if entry["action"] == "DELETE"]
    assert sorted(entry["record_id"] for entry in deletes) == sorted([first["id"], second["id"]])
    snapshots = {entry["record_id"]: decode_snapshot(entry["old_data"]) for entry in deletes}
    assert snapshots[first["id"]]["name"] == "Acme Corp"
    assert all(entry["new_data"] is None for entry in deletes)


def test_delete_unknown_record(make_orchestrator):
    result = make_orchestrator("rating_factors").delete(["missing"])
    assert isinstance(result.error, RecordNotFoundError)


def test_bulk_import_inserts_rows_and_one_audit_entry(make_orchestrator, store):
    content = (
        "name,type,value,effective_date,status\n"
        "Acme Corp,Multiplier,1.25,2024-01-01,Active\n"
        "Beta LLC,Addition,0.5,2024-02-01,Inactive\n"
    )

    result = make_orchestrator("rating_factors").bulk_import(content)

    assert result.success
    assert result.count == 2
    assert len(store.select_rows("rating_factors")) == 2
    entries = _audit_entries(store, "rating_factors")
    assert len(entries) == 1
    assert entries[0]["record_id"] == "bulk_import"
    assert decode_snapshot(entries[0]["new_data"]) == {"count": 2}


def test_bulk_import_rejects_invalid_rows(make_orchestrator, store):
    content = (
        "name,type,value,effective_date,status\n"
        "Acme Corp,Multiplier,1.25,2024-01-01,Active\n"
        "Beta LLC,Unknown,,2024-02-01,Active\n"
    )

    result = make_orchestrator("rating_factors").bulk_import(content)

    assert not result.success
    assert {item.field for item in result.violations} == {"type", "value"}
    assert all(item.message.startswith("Row 2: ") for item in result.violations)
    assert store.select_rows("rating_factors") == []


def test_read_only_table_rejects_mutations(make_orchestrator):
    orchestrator = make_orchestrator("audit_logs")
    assert orchestrator.load().success
    with pytest.raises(OperationNotPermittedError):
        orchestrator.create({"table_name": "x"})
    with pytest.raises(OperationNotPermittedError):
        orchestrator.delete(["anything"])
    with pytest.raises(OperationNotPermittedError):
        orchestrator.open_form()


def test_dependent_counts_use_declared_relationship(make_orchestrator):
    application = _create_application(make_orchestrator)
    _create_quote(make_orchestrator, application["id"])
    _create_quote(make_orchestrator, application["id"])

    orchestrator = make_orchestrator("applications")
    orchestrator.load()

    assert orchestrator.dependent_counts == {"quotes": 2}


def test_edit_form_warns_about_dependents(make_orchestrator):
    application = _create_application(make_orchestrator)
    _create_quote(make_orchestrator, application["id"])
    orchestrator = make_orchestrator("applications")

    form = orchestrator.open_form(application["id"])

    assert not form.is_new
    assert orchestrator.notifications[-1].level == "info"
    assert "1 records in quotes" in orchestrator.notifications[-1].message


def test_form_submission_goes_through_orchestrator(make_orchestrator, store):
    orchestrator = make_orchestrator("quotes")
    application = _create_application(make_orchestrator)

    form = orchestrator.open_form()
    application_input = next(item for item in form.inputs() if item.name == "application_id")
    assert [option.label for option in application_input.options] == ["Acme Corp"]

    submission = form.submit({"application_id": application["id"], "premium_amount": "950", "valid_until": "2024-09-30"})

    assert submission.valid
    assert submission.result.success
    rows = orchestrator.records
    assert rows[0]["premium_amount"] == 950.0
    assert rows[0]["_expanded"]["application_id"]["business_name"] == "Acme Corp"


def test_activation_reloads_on_external_change(make_orchestrator, store, change_feed):
    orchestrator = make_orchestrator("rating_factors")

    with orchestrator:
        assert orchestrator.state is ViewState.READY
        assert orchestrator.records == []
        store.insert_rows("rating_factors", [ACME])
        assert [row["name"] for row in orchestrator.records] == ["Acme Corp"]

    assert change_feed.subscriber_count("rating_factors") == 0


def test_grid_actions_are_wired(make_orchestrator, store):
    orchestrator = make_orchestrator("rating_factors")
    orchestrator.create(ACME)
    orchestrator.create(dict(ACME, name="Beta LLC"))

    grid = orchestrator.grid()
    grid.toggle_all()
    result = grid.delete_selected()

    assert result.success
    assert store.select_rows("rating_factors") == []


def test_export_and_insights(make_orchestrator):
    orchestrator = make_orchestrator("rating_factors")
    orchestrator.create(ACME)
    orchestrator.create(dict(ACME, status="Inactive"))

    lines = orchestrator.export_csv().splitlines()
    assert lines[0].startswith("id,name,type,value")
    assert len(lines) == 3

    insights = orchestrator.insights()
    assert insights.total_records == 2
    assert insights.active_records == 1
    assert insights.recent_changes == 2
    assert insights.potential_issues == ["Potential duplicate name: Acme Corp"]


def test_exported_csv_imports_back(make_orchestrator, store):
    orchestrator = make_orchestrator("rating_factors")
    original = orchestrator.create(ACME).records[0]

    result = orchestrator.bulk_import(orchestrator.export_csv())

    assert result.success, result.message
    assert result.count == 1
    imported = result.records[0]
    assert imported["id"] != original["id"]
    assert {key: imported[key] for key in ACME} == ACME
    assert len(store.select_rows("rating_factors")) == 2


def test_bulk_import_messages_lead_with_row_number(make_orchestrator):
    content = "name,type,value,effective_date,status\nBeta LLC,Unknown,,2024-02-01,Active\n"

    result = make_orchestrator("rating_factors").bulk_import(content)

    assert not result.success
    assert result.message.startswith("Row 1: type must be one of")
    assert "type: Row" not in result.message
