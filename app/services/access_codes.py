"""Building- and intercom-scoped access codes.

Tenants always act within their home building and only on codes they
created; staff act on buildings they manage; super admins act anywhere.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import CredentialValidationError, ForbiddenError, NotFoundError
from app.core.security import hash_secret
from app.core.settings import settings
from app.models import IntercomAccessCode, IntercomAccessLog, User
from app.services import access_log, authz, credential_store, directory
from app.services.access_log import AccessLogFilters
from app.services.audit import model_snapshot, record_audit_log

UPDATABLE_FIELDS = ("code", "is_single_use", "valid_from", "expires_at")


def _validate_code(value: str | None) -> str:
    code = (value or "").strip()
    if len(code) < settings.pin_min_length or len(code) > settings.access_code_max_length:
        raise CredentialValidationError(
            f"code must be between {settings.pin_min_length} and {settings.access_code_max_length} characters",
            details={"field": "code"},
        )
    return code


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _validate_window(valid_from: datetime | None, expires_at: datetime | None, *, check_future: bool) -> None:
    now = datetime.now(timezone.utc)
    if check_future and expires_at is not None and expires_at <= now:
        raise CredentialValidationError("Expiry must be in the future", details={"field": "expires_at"})
    if valid_from is not None and expires_at is not None and expires_at <= valid_from:
        raise CredentialValidationError("Expiry must be after valid-from", details={"field": "expires_at"})


async def _resolve_building_id(db: AsyncSession, actor: User, building_id: int | None) -> int:
    if authz.is_tenant(actor):
        home = authz.resolve_tenant_building_id(actor)
        if home is None:
            raise CredentialValidationError("Tenant building not found")
        if building_id is not None and building_id != home:
            raise ForbiddenError("Not allowed for this building")
        return home

    if building_id is None:
        raise CredentialValidationError("building_id is required", details={"field": "building_id"})
    if await directory.get_building(db, building_id) is None:
        raise NotFoundError(f"Building {building_id} not found")
    if not await authz.has_building_access(db, actor, building_id):
        raise ForbiddenError("Not allowed for this building")
    return building_id


async def create_access_code(
    db: AsyncSession,
    actor: User,
    *,
    secret: str,
    building_id: int | None = None,
    intercom_id: int | None = None,
    code_type: str = "PIN",
    expires_at: datetime | None = None,
    valid_from: datetime | None = None,
    is_single_use: bool = False,
) -> IntercomAccessCode:
    code = _validate_code(secret)
    resolved_building_id = await _resolve_building_id(db, actor, building_id)

    if intercom_id is not None:
        intercom = await directory.get_intercom(db, intercom_id)
        if intercom is None:
            raise NotFoundError(f"Intercom {intercom_id} not found")
        if intercom.building_id != resolved_building_id:
            raise CredentialValidationError(
                "Intercom does not belong to the specified building",
                details={"field": "intercom_id"},
            )

    valid_from = _as_utc(valid_from)
    expires_at = _as_utc(expires_at)
    _validate_window(valid_from, expires_at, check_future=True)

    row = IntercomAccessCode(
        building_id=resolved_building_id,
        intercom_id=intercom_id,
        code_type=code_type,
        code_hash=hash_secret(code),
        is_single_use=is_single_use,
        valid_from=valid_from,
        expires_at=expires_at,
        is_active=True,
        created_by=actor.id,
        created_at=datetime.now(timezone.utc),
    )
    row = await credential_store.add_access_code(db, row)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="access_code.create",
        resource_type="intercom_access_code",
        resource_id=row.id,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def can_edit_access_code(db: AsyncSession, actor: User, code: IntercomAccessCode) -> bool:
    if code.created_by is not None and code.created_by == actor.id:
        return True
    if authz.is_super_admin(actor):
        return True
    if authz.is_tenant(actor):
        return False
    return await authz.has_building_access(db, actor, code.building_id)


async def _load_editable(db: AsyncSession, actor: User, code_id: int) -> IntercomAccessCode:
    row = await db.get(IntercomAccessCode, code_id)
    if row is None:
        raise NotFoundError(f"Access code {code_id} not found")
    if not await can_edit_access_code(db, actor, row):
        raise ForbiddenError("Not allowed to modify this access code")
    return row


async def update_access_code(
    db: AsyncSession, actor: User, code_id: int, fields: dict[str, Any]
) -> IntercomAccessCode:
    """Apply only the keys present in ``fields``; an explicit ``None`` clears a date."""
    row = await _load_editable(db, actor, code_id)
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise CredentialValidationError(f"Unsupported fields: {sorted(unknown)}")

    valid_from = _as_utc(fields["valid_from"]) if "valid_from" in fields else _as_utc(row.valid_from)
    expires_at = _as_utc(fields["expires_at"]) if "expires_at" in fields else _as_utc(row.expires_at)
    _validate_window(valid_from, expires_at, check_future="expires_at" in fields)
    new_code = _validate_code(fields["code"]) if fields.get("code") is not None else None

    before = model_snapshot(row)
    if new_code is not None:
        row.code_hash = hash_secret(new_code)
    if fields.get("is_single_use") is not None:
        row.is_single_use = bool(fields["is_single_use"])
    if "valid_from" in fields:
        row.valid_from = valid_from
    if "expires_at" in fields:
        row.expires_at = expires_at
    row.updated_by = actor.id
    row.updated_at = datetime.now(timezone.utc)
    db.add(row)

    after = model_snapshot(row)
    if new_code is not None:
        after["code_rotated"] = True
    record_audit_log(
        db,
        actor_id=actor.id,
        action="access_code.update",
        resource_type="intercom_access_code",
        resource_id=row.id,
        old_value=before,
        new_value=after,
    )
    await db.commit()
    await db.refresh(row)
    return row


async def _set_active(db: AsyncSession, actor: User, code_id: int, active: bool) -> IntercomAccessCode:
    row = await _load_editable(db, actor, code_id)
    if row.is_active == active:
        return row
    before = model_snapshot(row)
    row.is_active = active
    row.updated_by = actor.id
    row.updated_at = datetime.now(timezone.utc)
    db.add(row)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="access_code.activate" if active else "access_code.deactivate",
        resource_type="intercom_access_code",
        resource_id=row.id,
        old_value=before,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def deactivate_access_code(db: AsyncSession, actor: User, code_id: int) -> IntercomAccessCode:
    return await _set_active(db, actor, code_id, False)


async def activate_access_code(db: AsyncSession, actor: User, code_id: int) -> IntercomAccessCode:
    return await _set_active(db, actor, code_id, True)


async def delete_access_code(db: AsyncSession, actor: User, code_id: int) -> None:
    row = await _load_editable(db, actor, code_id)
    before = model_snapshot(row)
    await db.delete(row)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="access_code.delete",
        resource_type="intercom_access_code",
        resource_id=code_id,
        old_value=before,
    )
    await db.commit()


async def list_access_codes(
    db: AsyncSession,
    actor: User,
    *,
    building_id: int | None = None,
    intercom_id: int | None = None,
    is_active: bool | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[IntercomAccessCode], int]:
    conditions = []
    scope = authz.access_code_scope(actor)
    if scope is not None:
        conditions.append(scope)
    if building_id is not None:
        conditions.append(IntercomAccessCode.building_id == building_id)
    if intercom_id is not None:
        conditions.append(IntercomAccessCode.intercom_id == intercom_id)
    if is_active is not None:
        conditions.append(IntercomAccessCode.is_active.is_(is_active))

    count_stmt = select(func.count()).select_from(IntercomAccessCode).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(IntercomAccessCode)
        .where(*conditions)
        .order_by(IntercomAccessCode.created_at.desc(), IntercomAccessCode.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_access_logs(
    db: AsyncSession,
    actor: User,
    filters: AccessLogFilters,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[IntercomAccessLog], int]:
    """Verification trail across buildings, narrowed to what ``actor`` may see."""
    return await access_log.list_access_logs(db, authz.access_log_scope(actor), filters, page, page_size)
