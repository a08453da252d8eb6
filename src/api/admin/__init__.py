"""Admin API router aggregation."""

from fastapi import APIRouter

from src.api.admin.audit import router as audit_router
from src.api.admin.disputes import router as disputes_router

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

admin_router.include_router(disputes_router)
admin_router.include_router(audit_router)

__all__ = ["admin_router"]
