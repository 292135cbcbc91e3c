from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.models.user import User
from app.schemas.access_codes import AccessCodeCreate, AccessCodeOut, AccessCodeUpdate
from app.schemas.common import Page
from app.services import access_codes as access_code_service

router = APIRouter(prefix="/access-codes", tags=["access-codes"])


@router.get("", response_model=Page[AccessCodeOut], summary="List access codes visible to the caller")
async def list_access_codes(
    building_id: int | None = Query(default=None),
    intercom_id: int | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> Page[AccessCodeOut]:
    rows, total = await access_code_service.list_access_codes(
        db,
        current_user,
        building_id=building_id,
        intercom_id=intercom_id,
        is_active=is_active,
        page=page,
        page_size=page_size,
    )
    return Page[AccessCodeOut](
        items=[AccessCodeOut.model_validate(row) for row in rows],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=AccessCodeOut, status_code=status.HTTP_201_CREATED, summary="Create an access code")
async def create_access_code(
    payload: AccessCodeCreate,
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> AccessCodeOut:
    row = await access_code_service.create_access_code(
        db,
        current_user,
        secret=payload.code,
        building_id=payload.building_id,
        intercom_id=payload.intercom_id,
        code_type=payload.code_type,
        expires_at=payload.expires_at,
        valid_from=payload.valid_from,
        is_single_use=payload.is_single_use,
    )
    return AccessCodeOut.model_validate(row)


@router.put("/{code_id}", response_model=AccessCodeOut, summary="Update an access code")
async def update_access_code(
    code_id: int,
    payload: AccessCodeUpdate,
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> AccessCodeOut:
    row = await access_code_service.update_access_code(
        db, current_user, code_id, payload.model_dump(exclude_unset=True)
    )
    return AccessCodeOut.model_validate(row)


@router.patch("/{code_id}/deactivate", response_model=AccessCodeOut, summary="Deactivate an access code")
async def deactivate_access_code(
    code_id: int,
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> AccessCodeOut:
    row = await access_code_service.deactivate_access_code(db, current_user, code_id)
    return AccessCodeOut.model_validate(row)


@router.patch("/{code_id}/activate", response_model=AccessCodeOut, summary="Re-activate an access code")
async def activate_access_code(
    code_id: int,
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> AccessCodeOut:
    row = await access_code_service.activate_access_code(db, current_user, code_id)
    return AccessCodeOut.model_validate(row)


@router.delete("/{code_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an access code")
async def delete_access_code(
    code_id: int,
    current_user: User = Depends(deps.require_permission(PermissionCode.ACCESS_CODE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await access_code_service.delete_access_code(db, current_user, code_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
