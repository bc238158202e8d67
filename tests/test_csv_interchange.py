from datetime import date

import pytest

from app.services.csv_interchange import CsvImportError, export_csv, export_filename, parse_import


def test_export_writes_header_and_rows_in_field_order(registry):
    table = registry.find_table("rating_factors")
    content = export_csv(
        table,
        [
            {
                "id": "rf-1",
                "name": "Acme Corp",
                "type": "Multiplier",
                "value": 1.25,
                "effective_date": date(2024, 1, 1),
                "status": None,
                "_expanded": {},
            }
        ],
    )
    lines = content.splitlines()
    assert lines[0] == "id,name,type,value,effective_date,status,last_modified,modified_by"
    assert lines[1] == "rf-1,Acme Corp,Multiplier,1.25,2024-01-01,,,"


def test_export_filename(registry):
    assert export_filename(registry.find_table("quotes"), date(2024, 3, 9)) == "quotes_2024-03-09.csv"


def test_positional_import_ignores_header_names(registry):
    table = registry.find_table("rating_factors")
    content = (
        "Factor,Kind,Amount,Start,State\n"
        "Acme Corp,Multiplier,1.25,2024-01-01,Active\n"
        "Beta LLC,Addition,0.5,2024-02-01,Inactive\n"
    )
    parsed = parse_import(table, content)
    assert parsed.columns == ["name", "type", "value", "effective_date", "status"]
    assert parsed.rows == [
        {"name": "Acme Corp", "type": "Multiplier", "value": 1.25, "effective_date": "2024-01-01", "status": "Active"},
        {"name": "Beta LLC", "type": "Addition", "value": 0.5, "effective_date": "2024-02-01", "status": "Inactive"},
    ]


def test_blank_and_unparseable_cells_are_skipped(registry):
    table = registry.find_table("rating_factors")
    parsed = parse_import(table, "h1,h2,h3,h4,h5\nAcme Corp,,abc,2024-01-01,null\n")
    assert parsed.rows == [{"name": "Acme Corp", "effective_date": "2024-01-01"}]
    assert parsed.skipped_cells == 1


def test_header_mapped_import_for_tables_without_layout(registry):
    table = registry.find_table("territories")
    content = "Code,Name,State,Risk Factor,Unknown\nT-1,North,CA,2.5,x\n"
    parsed = parse_import(table, content)
    assert parsed.columns == ["code", "name", "state", "risk_factor"]
    assert parsed.rows == [{"code": "T-1", "name": "North", "state": "CA", "risk_factor": 2.5}]


def test_bytes_with_bom_are_decoded(registry):
    table = registry.find_table("state_factors")
    data = "﻿code,name,rate,date,status\nCA,California,1.1,2024-01-01,Active\n".encode("utf-8")
    parsed = parse_import(table, data)
    assert parsed.rows[0]["state_code"] == "CA"
    assert parsed.rows[0]["base_rate"] == 1.1


def test_empty_upload_is_rejected(registry):
    with pytest.raises(CsvImportError):
        parse_import(registry.find_table("rating_factors"), "\n\n")


def test_unmatched_header_is_rejected(registry):
    with pytest.raises(CsvImportError):
        parse_import(registry.find_table("territories"), "foo,bar\n1,2\n")


def test_layout_table_maps_exported_header_by_name(registry):
    table = registry.find_table("rating_factors")
    content = (
        "id,name,type,value,effective_date,status,last_modified,modified_by\n"
        "rf-1,Acme Corp,Multiplier,1.25,2024-01-01,Active,2024-06-01T09:00:00,a@b.c\n"
    )
    parsed = parse_import(table, content)
    assert parsed.columns == ["name", "type", "value", "effective_date", "status"]
    assert parsed.rows == [
        {"name": "Acme Corp", "type": "Multiplier", "value": 1.25, "effective_date": "2024-01-01", "status": "Active"}
    ]
