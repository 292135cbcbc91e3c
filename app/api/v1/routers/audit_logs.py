from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.models.audit_log import AuditLog
from app.models.user import User
from app.schemas.audit import AuditActorSummary, AuditLogEntry, AuditLogListResponse

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogListResponse, summary="List credential management changes")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    feature: list[str] | None = Query(default=None),
    action: list[str] | None = Query(default=None),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    actor_id: int | None = Query(default=None),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    _: User = Depends(deps.require_permission(PermissionCode.AUDIT_LOG_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> AuditLogListResponse:
    offset = (page - 1) * page_size

    conditions = []
    if actor_id is not None:
        conditions.append(AuditLog.actor_id == actor_id)
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if resource_id:
        conditions.append(AuditLog.resource_id == resource_id)
    if created_from:
        conditions.append(AuditLog.created_at >= created_from)
    if created_to:
        conditions.append(AuditLog.created_at <= created_to)
    if action:
        conditions.append(AuditLog.action.in_(action))
    if feature:
        # "access_code" matches access_code.create, access_code.update, ...
        conditions.append(or_(*[AuditLog.action.like(f"{prefix}%") for prefix in feature]))

    count_stmt = select(func.count()).select_from(AuditLog).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(AuditLog, User)
        .outerjoin(User, User.id == AuditLog.actor_id)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    rows = (await db.execute(stmt)).all()
    items: list[AuditLogEntry] = []
    for audit_log, user in rows:
        actor = None
        if user is not None:
            actor = AuditActorSummary(user_id=user.id, full_name=user.full_name, email=user.email)
        items.append(AuditLogEntry.model_validate(audit_log).model_copy(update={"actor": actor}))
    return AuditLogListResponse(items=items, total=total, page=page, page_size=page_size)
