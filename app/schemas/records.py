from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FieldViolationRead(BaseModel):
    field: str
    message: str


class NotificationRead(BaseModel):
    level: str
    message: str


class TableSummary(BaseModel):
    name: str
    display_name: str
    description: Optional[str] = None
    read_only: bool = False
    field_count: int


class SelectOptionRead(BaseModel):
    value: str
    label: str


class FormInputRead(BaseModel):
    name: str
    label: str
    field_type: str
    widget: str
    required: bool
    value: Any = None
    description: Optional[str] = None
    options: List[SelectOptionRead] = Field(default_factory=list)
    constraints: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class FormRead(BaseModel):
    table_name: str
    title: str
    submit_label: str
    is_new: bool
    record_id: Optional[str] = None
    inputs: List[FormInputRead]
    notifications: List[NotificationRead] = Field(default_factory=list)


class RecordPage(BaseModel):
    table_name: str
    rows: List[Dict[str, Any]]
    total_rows: int
    filtered_rows: int
    page: int
    page_count: int
    page_size: int
    can_previous_page: bool
    can_next_page: bool
    sort: Optional[str] = None
    desc: bool = False
    q: str = ""
    dependent_counts: Dict[str, int] = Field(default_factory=dict)


class RecordMutationResponse(BaseModel):
    record: Dict[str, Any]
    message: str


class BulkDeleteRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    deleted: int
    message: str


class ImportResponse(BaseModel):
    count: int
    message: str


class DependentsResponse(BaseModel):
    table_name: str
    record_id: Optional[str] = None
    counts: Dict[str, int] = Field(default_factory=dict)


class InsightsRead(BaseModel):
    total_records: int
    active_records: int
    recent_changes: int
    potential_issues: List[str] = Field(default_factory=list)


class AuditLogRead(BaseModel):
    id: str
    table_name: str
    record_id: str
    action: str
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    performed_by: str
    performed_at: datetime


class SessionRead(BaseModel):
    authenticated: bool
    email: Optional[str] = None
    auth_required: bool
    sign_out_url: str


class SignOutResponse(BaseModel):
    sign_out_url: str


class ChangeNotice(BaseModel):
    table_name: str = Field(..., min_length=1)
    action: str = Field("UPDATE", pattern="^(INSERT|UPDATE|DELETE)$")
    record_ids: List[str] = Field(default_factory=list)


class ChangeNoticeAccepted(BaseModel):
    table_name: str
    delivered: int
