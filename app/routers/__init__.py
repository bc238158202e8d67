from fastapi import APIRouter

from app.routers import audit_logs, changes, import_export, records, session, tables

api_router = APIRouter()
api_router.include_router(session.router)
api_router.include_router(tables.router)
api_router.include_router(records.router)
api_router.include_router(import_export.router)
api_router.include_router(audit_logs.router)
api_router.include_router(changes.router)

__all__ = ["api_router"]
