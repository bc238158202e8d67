from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import StreamingResponse

from app.config import Settings, get_settings
from app.schemas import ImportResponse
from app.services.csv_interchange import export_filename
from app.services.errors import AdminError
from app.services.table_orchestrator import TableOrchestrator

from app.routers.dependencies import ensure_success, get_table_orchestrator, raise_http_error

router = APIRouter(prefix="/tables/{table_name}", tags=["Import/Export"])


@router.get("/export")
def export_records(orchestrator: TableOrchestrator = Depends(get_table_orchestrator)) -> StreamingResponse:
    ensure_success(orchestrator.load())
    content = orchestrator.export_csv()
    headers = {
        "Content-Disposition": f"attachment; filename={export_filename(orchestrator.table)}",
        "Cache-Control": "no-store",
    }
    return StreamingResponse(iter([content]), media_type="text/csv", headers=headers)


@router.post("/import", response_model=ImportResponse, status_code=status.HTTP_201_CREATED)
async def import_records(
    file: UploadFile = File(...),
    orchestrator: TableOrchestrator = Depends(get_table_orchestrator),
    settings: Settings = Depends(get_settings),
) -> ImportResponse:
    data = await _read_upload_bytes(file, settings.max_upload_bytes)
    try:
        result = ensure_success(orchestrator.bulk_import(data))
    except AdminError as exc:
        raise_http_error(exc)
    return ImportResponse(count=result.count, message=result.message)


async def _read_upload_bytes(upload: UploadFile, limit: int) -> bytes:
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")
    if len(data) > limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Uploaded file exceeds the {limit // (1024 * 1024) or 1} MB size limit.",
        )
    return data
