"""Fields the record store manages on behalf of the console."""

from __future__ import annotations

SYSTEM_FIELD_DEFINITIONS = (
    {
        "name": "id",
        "description": "Stable record identifier assigned by the store.",
        "editable": False,
    },
    {
        "name": "created_at",
        "description": "UTC timestamp when the record was created.",
        "editable": True,
    },
    {
        "name": "updated_at",
        "description": "UTC timestamp when the record was last updated.",
        "editable": True,
    },
    {
        "name": "last_modified",
        "description": "UTC timestamp stamped on every console write.",
        "editable": True,
    },
    {
        "name": "modified_by",
        "description": "Email of the user who performed the last console write.",
        "editable": True,
    },
)

SYSTEM_FIELD_NAME_SET = frozenset(entry["name"] for entry in SYSTEM_FIELD_DEFINITIONS)
NON_EDITABLE_FIELD_NAME_SET = frozenset(
    entry["name"] for entry in SYSTEM_FIELD_DEFINITIONS if not entry["editable"]
)

RECORD_ID_FIELD = "id"
