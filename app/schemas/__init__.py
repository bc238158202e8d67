from app.schemas.definitions import (
    Cardinality,
    ColumnReference,
    DatabaseSchema,
    FieldDefinition,
    FieldType,
    ForeignKeyConstraint,
    ForeignKeyReference,
    Relationship,
    TableDefinition,
)
from app.schemas.records import (
    AuditLogRead,
    BulkDeleteRequest,
    ChangeNotice,
    ChangeNoticeAccepted,
    DeleteResponse,
    DependentsResponse,
    FieldViolationRead,
    FormInputRead,
    FormRead,
    ImportResponse,
    InsightsRead,
    NotificationRead,
    RecordMutationResponse,
    RecordPage,
    SelectOptionRead,
    SessionRead,
    SignOutResponse,
    TableSummary,
)

__all__ = [
    "AuditLogRead",
    "BulkDeleteRequest",
    "Cardinality",
    "ChangeNotice",
    "ChangeNoticeAccepted",
    "ColumnReference",
    "DatabaseSchema",
    "DeleteResponse",
    "DependentsResponse",
    "FieldDefinition",
    "FieldType",
    "FieldViolationRead",
    "ForeignKeyConstraint",
    "ForeignKeyReference",
    "FormInputRead",
    "FormRead",
    "ImportResponse",
    "InsightsRead",
    "NotificationRead",
    "RecordMutationResponse",
    "RecordPage",
    "Relationship",
    "SelectOptionRead",
    "SessionRead",
    "SignOutResponse",
    "TableDefinition",
]
