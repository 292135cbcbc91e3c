from fastapi import APIRouter

from app.api.v1.routers import (
    access_codes,
    access_logs,
    audit_logs,
    health,
    intercom_access,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(intercom_access.router)
api_router.include_router(intercom_access.verify_router)
api_router.include_router(access_codes.router)
api_router.include_router(access_logs.router)
api_router.include_router(audit_logs.router)

__all__ = ["api_router"]
