from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import BulkDeleteRequest, DeleteResponse, DependentsResponse, RecordMutationResponse, RecordPage
from app.services.data_grid import PAGE_SIZE_OPTIONS
from app.services.errors import AdminError
from app.services.table_orchestrator import TableOrchestrator

from app.routers.dependencies import ensure_success, get_table_orchestrator, raise_http_error

router = APIRouter(prefix="/tables/{table_name}/records", tags=["Records"])


@router.get("", response_model=RecordPage)
def list_records(
    sort: Optional[str] = Query(default=None),
    desc: bool = Query(default=False),
    q: str = Query(default=""),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> RecordPage:
    if page_size not in PAGE_SIZE_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"page_size must be one of {', '.join(str(size) for size in PAGE_SIZE_OPTIONS)}.",
        )

    ensure_success(orchestrator.load())
    grid = orchestrator.grid(page_size=page_size)
    if sort:
        try:
            grid.sort_by(sort, descending=desc)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    grid.set_global_filter(q)
    grid.go_to_page(page - 1)

    snapshot = grid.snapshot()
    return RecordPage(
        table_name=orchestrator.table_name,
        rows=[dict(row) for row in snapshot.rows],
        total_rows=snapshot.total_rows,
        filtered_rows=snapshot.filtered_rows,
        page=snapshot.page_index + 1,
        page_count=snapshot.page_count,
        page_size=snapshot.page_size,
        can_previous_page=snapshot.can_previous_page,
        can_next_page=snapshot.can_next_page,
        sort=snapshot.sort.column if snapshot.sort else None,
        desc=snapshot.sort.descending if snapshot.sort else False,
        q=snapshot.global_filter,
        dependent_counts=orchestrator.dependent_counts,
    )


@router.post("", response_model=RecordMutationResponse, status_code=status.HTTP_201_CREATED)
def create_record(
    payload: dict[str, Any] = Body(...),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> RecordMutationResponse:
    try:
        result = ensure_success(orchestrator.create(payload))
    except AdminError as exc:
        raise_http_error(exc)
    return RecordMutationResponse(record=result.records[0], message=result.message)


@router.get("/dependents", response_model=DependentsResponse)
def read_dependents(
    record_id: Optional[str] = Query(default=None),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> DependentsResponse:
    try:
        if record_id is None:
            ensure_success(orchestrator.load())
            counts = orchestrator.dependent_counts
        else:
            counts = orchestrator.dependents_of(orchestrator.get_record(record_id))
    except AdminError as exc:
        raise_http_error(exc)
    return DependentsResponse(table_name=orchestrator.table_name, record_id=record_id, counts=counts)


@router.post("/bulk-delete", response_model=DeleteResponse)
def bulk_delete_records(
    request: BulkDeleteRequest,
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> DeleteResponse:
    try:
        result = ensure_success(orchestrator.delete(request.ids))
    except AdminError as exc:
        raise_http_error(exc)
    return DeleteResponse(deleted=result.count, message=result.message)


@router.get("/{record_id}", response_model=dict[str, Any])
def read_record(
    record_id: str,
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> dict[str, Any]:
    try:
        return orchestrator.get_record(record_id)
    except AdminError as exc:
        raise_http_error(exc)


@router.put("/{record_id}", response_model=RecordMutationResponse)
def update_record(
    record_id: str,
    payload: dict[str, Any] = Body(...),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> RecordMutationResponse:
    try:
        result = ensure_success(orchestrator.update(record_id, payload))
    except AdminError as exc:
        raise_http_error(exc)
    return RecordMutationResponse(record=result.records[0], message=result.message)


@router.delete("/{record_id}", response_model=DeleteResponse)
def delete_record(
    record_id: str,
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
) -> DeleteResponse:
    try:
        result = ensure_success(orchestrator.delete([record_id]))
    except AdminError as exc:
        raise_http_error(exc)
    return DeleteResponse(deleted=result.count, message=result.message)
