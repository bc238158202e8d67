from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.schemas import FormInputRead, FormRead, InsightsRead, NotificationRead, SelectOptionRead, TableDefinition, TableSummary
from app.services.auth import require_user
from app.services.errors import AdminError
from app.services.form_renderer import FormInput
from app.services.schema_registry import SchemaRegistry
from app.services.table_orchestrator import TableOrchestrator

from app.routers.dependencies import ensure_success, get_registry, get_table_orchestrator, raise_http_error

router = APIRouter(prefix="/tables", tags=["Tables"], dependencies=[Depends(require_user)])


def _serialize_input(item: FormInput) -> FormInputRead:
    return FormInputRead(
        name=item.name,
        label=item.label,
        field_type=item.field_type.value,
        widget=item.widget.value,
        required=item.required,
        value=item.value,
        description=item.description,
        options=[SelectOptionRead(value=option.value, label=option.label) for option in item.options],
        constraints=item.constraints,
        error=item.error,
    )


@router.get("", response_model=list[TableSummary])
def list_tables(registry: SchemaRegistry = Depends(get_registry)) -> list[TableSummary]:
    return [
        TableSummary(
            name=table.name,
            display_name=table.display_name,
            description=table.description,
            read_only=table.read_only,
            field_count=len(table.fields),
        )
        for table in registry.list_tables()
    ]


@router.get("/{table_name}", response_model=TableDefinition)
def read_table(orchestrator: TableOrchestrator = Depends(get_table_orchestrator)) -> TableDefinition:
    return orchestrator.table


@router.get("/{table_name}/form", response_model=FormRead)
def read_form(
    record_id: Optional[str] = Query(default=None),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> FormRead:
    try:
        form = orchestrator.open_form(record_id)
    except AdminError as exc:
        raise_http_error(exc)

    return FormRead(
        table_name=orchestrator.table_name,
        title=form.title,
        submit_label=form.submit_label,
        is_new=form.is_new,
        record_id=record_id,
        inputs=[_serialize_input(item) for item in form.inputs()],
        notifications=[
            NotificationRead(level=item.level, message=item.message) for item in orchestrator.notifications
        ],
    )


@router.get("/{table_name}/insights", response_model=InsightsRead)
def read_insights(orchestrator: TableOrchestrator = Depends(get_table_orchestrator)) -> InsightsRead:
    ensure_success(orchestrator.load())
    return InsightsRead(**orchestrator.insights().dict())
