"""API router aggregation."""

from fastapi import APIRouter

from src.api.admin import admin_router
from src.api.auth import router as auth_router
from src.api.disputes import router as disputes_router
from src.api.health import router as health_router
from src.api.messages import router as messages_router
from src.api.orders import router as orders_router

# Main API router (for /api/* endpoints)
api_router = APIRouter(prefix="/api")

api_router.include_router(health_router)
api_router.include_router(auth_router)
api_router.include_router(orders_router)
api_router.include_router(messages_router)
api_router.include_router(disputes_router)
api_router.include_router(admin_router)

__all__ = ["api_router"]
