from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Coroutine

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.limiter import limiter, verify_rate_limit
from app.core.permissions import PermissionCode
from app.db.session import AsyncSessionLocal, get_db
from app.models.user import User
from app.schemas.access_logs import AccessLogEntry
from app.schemas.common import Page
from app.schemas.intercom_access import (
    MasterPinSet,
    OwnPinUpdate,
    PinOperationResult,
    TemporaryPinCreate,
    TemporaryPinOut,
    TemporaryPinUsageOut,
    UserPinSet,
    VerifyRequest,
    VerifyResponse,
)
from app.services import intercom_access as intercom_access_service
from app.services import verification
from app.services.access_log import AccessLogFilters, UsageFilters
from app.utils import verify_throttle

logger = logging.getLogger(__name__)

DEVICE_INFO_MAX_LENGTH = 200


def _device_info(request: Request, declared: str | None = None) -> str | None:
    device_info = declared or request.headers.get("user-agent")
    return device_info[:DEVICE_INFO_MAX_LENGTH] if device_info else None


async def _record_rejected_verify(request: Request, reason: str) -> None:
    try:
        intercom_id = int(request.path_params["intercom_id"])
    except (KeyError, ValueError):
        logger.warning(
            "Rejected verify request has no usable intercom id",
            extra={"event": {"name": "intercom_access_rejected_unattributed", "reason": reason}},
        )
        return
    async with AsyncSessionLocal() as db:
        await verification.record_rejected_request(
            db,
            intercom_id,
            reason,
            ip=request.client.host if request.client else None,
            device_info=_device_info(request),
        )


class VerifyAttemptRoute(APIRoute):
    """Logs verify calls refused by the rate limiter or body validation.

    Both are raised before the endpoint body runs, so the verification
    engine never sees them.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()

        async def logged_handler(request: Request) -> Response:
            try:
                return await handler(request)
            except RateLimitExceeded:
                await _record_rejected_verify(request, verification.RATE_LIMITED_REASON)
                raise
            except RequestValidationError:
                await _record_rejected_verify(request, verification.MALFORMED_REQUEST_REASON)
                raise

        return logged_handler


router = APIRouter(prefix="/intercoms/{intercom_id}/access", tags=["intercom-access"])
verify_router = APIRouter(
    prefix="/intercoms/{intercom_id}/access",
    tags=["intercom-access"],
    route_class=VerifyAttemptRoute,
)


@router.post("/master-pin", response_model=PinOperationResult, summary="Set or rotate the master pin")
async def set_master_pin(
    intercom_id: int,
    payload: MasterPinSet,
    current_user: User = Depends(deps.require_permission(PermissionCode.MASTER_PIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> PinOperationResult:
    row = await intercom_access_service.set_or_update_master_pin(db, current_user, intercom_id, payload.pin)
    return PinOperationResult(intercom_id=intercom_id, pin_id=row.id, message="Master pin set")


@router.post("/users/{user_id}/pin", response_model=PinOperationResult, summary="Set or reset a user's pin")
async def set_user_pin(
    intercom_id: int,
    user_id: int,
    payload: UserPinSet,
    current_user: User = Depends(deps.require_authenticated_user),
    db: AsyncSession = Depends(get_db),
) -> PinOperationResult:
    row = await intercom_access_service.set_or_update_user_pin(
        db,
        current_user,
        intercom_id,
        user_id,
        payload.pin,
        master_pin=payload.master_pin,
    )
    return PinOperationResult(intercom_id=intercom_id, user_id=user_id, pin_id=row.id, message="User pin set")


@router.post("/pin/self", response_model=PinOperationResult, summary="Create or change the caller's own pin")
async def update_own_pin(
    intercom_id: int,
    payload: OwnPinUpdate,
    current_user: User = Depends(deps.require_permission(PermissionCode.USER_PIN_SELF_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> PinOperationResult:
    row = await intercom_access_service.update_own_user_pin(
        db, current_user, intercom_id, payload.new_pin, old_secret=payload.old_pin
    )
    return PinOperationResult(intercom_id=intercom_id, user_id=current_user.id, pin_id=row.id, message="Pin updated")


@router.post(
    "/temporary-pins",
    response_model=TemporaryPinOut,
    status_code=201,
    summary="Issue a temporary guest pin",
)
async def create_temporary_pin(
    intercom_id: int,
    payload: TemporaryPinCreate,
    current_user: User = Depends(deps.require_permission(PermissionCode.TEMPORARY_PIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> TemporaryPinOut:
    row = await intercom_access_service.create_temporary_pin(
        db,
        current_user,
        intercom_id,
        payload.pin,
        payload.expires_at,
        payload.max_uses,
        label=payload.label,
    )
    return TemporaryPinOut.model_validate(row)


@router.get("/temporary-pins", response_model=Page[TemporaryPinOut], summary="List temporary pins")
async def list_temporary_pins(
    intercom_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    include_inactive: bool = Query(False),
    current_user: User = Depends(deps.require_permission(PermissionCode.TEMPORARY_PIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> Page[TemporaryPinOut]:
    rows, total = await intercom_access_service.list_temporary_pins(
        db, current_user, intercom_id, page, page_size, include_inactive=include_inactive
    )
    return Page[TemporaryPinOut](
        items=[TemporaryPinOut.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/temporary-pins/usages",
    response_model=Page[TemporaryPinUsageOut],
    summary="List temporary pin usages",
)
async def list_temporary_pin_usages(
    intercom_id: int,
    temporary_pin_id: int | None = Query(default=None),
    used_from: datetime | None = Query(default=None),
    used_to: datetime | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.require_permission(PermissionCode.TEMPORARY_PIN_USAGE_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> Page[TemporaryPinUsageOut]:
    filters = UsageFilters(temporary_pin_id=temporary_pin_id, used_from=used_from, used_to=used_to)
    rows, total = await intercom_access_service.list_temporary_pin_usages(
        db, current_user, intercom_id, filters, page, page_size
    )
    items = [
        TemporaryPinUsageOut(
            id=usage.id,
            temporary_pin_id=usage.temporary_pin_id,
            label=pin.label,
            used_at=usage.used_at,
            used_from_ip=usage.used_from_ip,
            device_info=usage.device_info,
        )
        for usage, pin in rows
    ]
    return Page[TemporaryPinUsageOut](items=items, total=total, page=page, page_size=page_size)


@router.post(
    "/temporary-pins/{pin_id}/revoke",
    response_model=TemporaryPinOut,
    summary="Revoke a temporary pin",
)
async def revoke_temporary_pin(
    intercom_id: int,
    pin_id: int,
    current_user: User = Depends(deps.require_permission(PermissionCode.TEMPORARY_PIN_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> TemporaryPinOut:
    row = await intercom_access_service.revoke_temporary_pin(db, current_user, pin_id, intercom_id=intercom_id)
    return TemporaryPinOut.model_validate(row)


@router.get("/logs", response_model=Page[AccessLogEntry], summary="Verification attempts on this intercom")
async def list_intercom_logs(
    intercom_id: int,
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    success: bool | None = Query(default=None),
    credential_type: str | None = Query(default=None),
    user_id: int | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.require_permission(PermissionCode.INTERCOM_ACCESS_LOG_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> Page[AccessLogEntry]:
    filters = AccessLogFilters(
        occurred_from=occurred_from,
        occurred_to=occurred_to,
        success=success,
        credential_type=credential_type,
        user_id=user_id,
    )
    rows, total = await intercom_access_service.list_intercom_access_logs(
        db, current_user, intercom_id, filters, page, page_size
    )
    return Page[AccessLogEntry](
        items=[AccessLogEntry.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@verify_router.post("/verify", response_model=VerifyResponse, summary="Verify a pin submitted at the intercom")
@limiter.limit(verify_rate_limit)
async def verify_access(
    intercom_id: int,
    payload: VerifyRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> VerifyResponse:
    """Anonymous device endpoint. Denials always carry the same generic reason."""
    client_ip = request.client.host if request.client else None
    device_info = _device_info(request, payload.device_info)

    throttled = await verify_throttle.is_throttled(intercom_id, client_ip)
    result = await verification.verify(
        db,
        intercom_id,
        payload.pin,
        ip=client_ip,
        device_info=device_info,
        throttled=throttled,
    )
    if not throttled:
        await verify_throttle.register_verify_attempt(intercom_id, client_ip, result.success)
    return VerifyResponse(
        granted=result.success,
        reason=result.reason,
        credential_type=result.credential_type.value,
        credential_ref_id=result.credential_ref_id,
        timestamp=result.timestamp,
    )
