from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.models.user import User
from app.schemas.access_logs import AccessLogEntry
from app.schemas.common import Page
from app.services import access_codes as access_code_service
from app.services.access_log import AccessLogFilters

router = APIRouter(prefix="/access-logs", tags=["access-logs"])


@router.get("", response_model=Page[AccessLogEntry], summary="Verification attempts visible to the caller")
async def list_access_logs(
    building_id: int | None = Query(default=None),
    intercom_id: int | None = Query(default=None),
    code_id: int | None = Query(default=None),
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    success: bool | None = Query(default=None),
    credential_type: str | None = Query(default=None),
    user_id: int | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_LOG_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> Page[AccessLogEntry]:
    filters = AccessLogFilters(
        building_id=building_id,
        intercom_id=intercom_id,
        code_id=code_id,
        occurred_from=occurred_from,
        occurred_to=occurred_to,
        success=success,
        credential_type=credential_type,
        user_id=user_id,
    )
    rows, total = await access_code_service.list_access_logs(db, current_user, filters, page, page_size)
    return Page[AccessLogEntry](
        items=[AccessLogEntry.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
