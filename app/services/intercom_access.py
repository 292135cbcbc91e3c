"""Management of master, user and temporary pins for a single intercom."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import CredentialValidationError, ForbiddenError, NotFoundError
from app.core.security import averify_secret, hash_secret
from app.core.settings import settings
from app.models import (
    Intercom,
    IntercomAccessLog,
    IntercomMasterPin,
    IntercomTemporaryPin,
    IntercomTemporaryPinUsage,
    IntercomUserPin,
    User,
)
from app.services import access_log, authz, credential_store, directory
from app.services.access_log import AccessLogFilters, UsageFilters
from app.services.audit import model_snapshot, record_audit_log

logger = logging.getLogger(__name__)


def validate_pin(value: str | None, field: str = "pin") -> str:
    pin = (value or "").strip()
    if len(pin) < settings.pin_min_length or len(pin) > settings.pin_max_length:
        raise CredentialValidationError(
            f"{field} must be between {settings.pin_min_length} and {settings.pin_max_length} characters",
            details={"field": field},
        )
    return pin


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def load_intercom(db: AsyncSession, intercom_id: int) -> Intercom:
    intercom = await directory.get_intercom(db, intercom_id)
    if intercom is None:
        raise NotFoundError(f"Intercom {intercom_id} not found")
    return intercom


async def _require_intercom_access(db: AsyncSession, actor: User, intercom_id: int) -> Intercom:
    intercom = await load_intercom(db, intercom_id)
    if not await authz.has_building_access(db, actor, intercom.building_id):
        raise ForbiddenError("Not allowed for this intercom")
    return intercom


async def set_or_update_master_pin(
    db: AsyncSession, actor: User, intercom_id: int, new_secret: str
) -> IntercomMasterPin:
    if not authz.is_super_admin(actor):
        raise ForbiddenError("Only super admins can manage master pins")
    pin = validate_pin(new_secret)
    await load_intercom(db, intercom_id)

    prior = await credential_store.get_active_master_pin(db, intercom_id)
    old_snapshot = model_snapshot(prior) if prior is not None else None
    row = await credential_store.supersede_master_pin(db, intercom_id, hash_secret(pin), actor.id)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="intercom.master_pin.rotate" if prior is not None else "intercom.master_pin.set",
        resource_type="intercom_master_pin",
        resource_id=row.id,
        old_value=old_snapshot,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    logger.info("Master pin set", extra={"event": {"name": "master_pin_set", "intercom_id": intercom_id}})
    return row


async def set_or_update_user_pin(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    user_id: int,
    secret: str,
    master_pin: str | None = None,
) -> IntercomUserPin:
    """Set a user's pin. Resetting someone else's pin needs super admin plus the current master pin."""
    acting_on_self = actor.id == user_id
    if not acting_on_self:
        if not authz.is_super_admin(actor):
            raise ForbiddenError("Not allowed to set another user's pin")
        if not master_pin:
            raise CredentialValidationError(
                "Master pin required to reset another user's pin",
                details={"field": "master_pin"},
            )
    pin = validate_pin(secret)
    if acting_on_self:
        await _require_intercom_access(db, actor, intercom_id)
    else:
        await load_intercom(db, intercom_id)
        master = await credential_store.get_active_master_pin(db, intercom_id)
        if master is None or not await averify_secret(master_pin, master.pin_hash):
            raise ForbiddenError("Invalid master pin")

    target = await directory.get_user(db, user_id)
    if target is None or not target.is_active:
        raise NotFoundError(f"User {user_id} not found or inactive")

    prior = await credential_store.get_active_user_pin(db, intercom_id, user_id)
    old_snapshot = model_snapshot(prior) if prior is not None else None
    row = await credential_store.supersede_user_pin(db, intercom_id, user_id, hash_secret(pin), actor.id)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="intercom.user_pin.set" if acting_on_self else "intercom.user_pin.reset",
        resource_type="intercom_user_pin",
        resource_id=row.id,
        old_value=old_snapshot,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def update_own_user_pin(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    new_secret: str,
    old_secret: str | None = None,
) -> IntercomUserPin:
    """Create the caller's pin, or replace it when the current one is presented."""
    pin = validate_pin(new_secret, "new_pin")
    await _require_intercom_access(db, actor, intercom_id)

    existing = await credential_store.get_active_user_pin(db, intercom_id, actor.id)
    if existing is not None:
        if not old_secret:
            raise CredentialValidationError("Old pin is required", details={"field": "old_pin"})
        if not await averify_secret(old_secret, existing.pin_hash):
            raise CredentialValidationError("Old pin does not match", details={"field": "old_pin"})

    old_snapshot = model_snapshot(existing) if existing is not None else None
    row = await credential_store.supersede_user_pin(db, intercom_id, actor.id, hash_secret(pin), actor.id)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="intercom.user_pin.update_own" if existing is not None else "intercom.user_pin.create_own",
        resource_type="intercom_user_pin",
        resource_id=row.id,
        old_value=old_snapshot,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def create_temporary_pin(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    secret: str,
    expires_at: datetime,
    max_uses: int,
    label: str | None = None,
) -> IntercomTemporaryPin:
    pin = validate_pin(secret)
    now = datetime.now(timezone.utc)
    expires = _as_utc(expires_at)
    if expires <= now:
        raise CredentialValidationError("Expiry must be in the future", details={"field": "expires_at"})
    if expires > now + timedelta(hours=settings.temporary_pin_max_lifetime_hours):
        raise CredentialValidationError(
            f"Expiry must be within {settings.temporary_pin_max_lifetime_hours} hours",
            details={"field": "expires_at"},
        )
    if max_uses < 1 or max_uses > settings.temporary_pin_max_uses_limit:
        raise CredentialValidationError(
            f"max_uses must be between 1 and {settings.temporary_pin_max_uses_limit}",
            details={"field": "max_uses"},
        )
    await _require_intercom_access(db, actor, intercom_id)

    row = IntercomTemporaryPin(
        intercom_id=intercom_id,
        created_by_user_id=actor.id,
        pin_hash=hash_secret(pin),
        label=label or None,
        expires_at=expires,
        max_uses=max_uses,
        uses_count=0,
        is_active=True,
        created_at=now,
    )
    row = await credential_store.add_temporary_pin(db, row)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="intercom.temporary_pin.create",
        resource_type="intercom_temporary_pin",
        resource_id=row.id,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def _can_manage_others_pins(db: AsyncSession, actor: User, intercom: Intercom) -> bool:
    if authz.is_super_admin(actor):
        return True
    if authz.is_tenant(actor):
        return False
    return await authz.has_building_access(db, actor, intercom.building_id)


async def revoke_temporary_pin(
    db: AsyncSession, actor: User, pin_id: int, intercom_id: int | None = None
) -> IntercomTemporaryPin:
    row = await db.get(IntercomTemporaryPin, pin_id)
    if row is None or (intercom_id is not None and row.intercom_id != intercom_id):
        raise NotFoundError(f"Temporary pin {pin_id} not found")
    if row.created_by_user_id != actor.id:
        intercom = await load_intercom(db, row.intercom_id)
        if not await _can_manage_others_pins(db, actor, intercom):
            raise ForbiddenError("Not allowed to revoke this temporary pin")

    before = model_snapshot(row)
    row.is_active = False
    db.add(row)
    record_audit_log(
        db,
        actor_id=actor.id,
        action="intercom.temporary_pin.revoke",
        resource_type="intercom_temporary_pin",
        resource_id=row.id,
        old_value=before,
        new_value=model_snapshot(row),
    )
    await db.commit()
    await db.refresh(row)
    return row


async def list_temporary_pins(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    page: int = 1,
    page_size: int = 50,
    include_inactive: bool = False,
) -> tuple[list[IntercomTemporaryPin], int]:
    intercom = await _require_intercom_access(db, actor, intercom_id)
    conditions = [IntercomTemporaryPin.intercom_id == intercom_id]
    if not include_inactive:
        conditions.append(IntercomTemporaryPin.is_active.is_(True))
    if not await _can_manage_others_pins(db, actor, intercom):
        conditions.append(IntercomTemporaryPin.created_by_user_id == actor.id)

    count_stmt = select(func.count()).select_from(IntercomTemporaryPin).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(IntercomTemporaryPin)
        .where(*conditions)
        .order_by(IntercomTemporaryPin.created_at.desc(), IntercomTemporaryPin.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_temporary_pin_usages(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    filters: UsageFilters,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[tuple[IntercomTemporaryPinUsage, IntercomTemporaryPin]], int]:
    intercom = await _require_intercom_access(db, actor, intercom_id)
    if not await _can_manage_others_pins(db, actor, intercom):
        filters.created_by_user_id = actor.id
    return await access_log.list_temporary_pin_usages(db, intercom_id, filters, page, page_size)


async def list_intercom_access_logs(
    db: AsyncSession,
    actor: User,
    intercom_id: int,
    filters: AccessLogFilters,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[IntercomAccessLog], int]:
    """Full per-intercom trail, super admins only."""
    if not authz.is_super_admin(actor):
        raise ForbiddenError("Only super admins can view intercom access logs")
    filters.intercom_id = intercom_id
    return await access_log.list_access_logs(db, None, filters, page, page_size)
