"""Scoped reads and writes for the four intercom credential kinds.

Rows are only ever hashed secrets. Reads take no locks; the verification
engine applies expiry and usage checks itself rather than trusting
``is_active`` alone.
"""

from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import DuplicateCredentialError
from app.models import (
    IntercomAccessCode,
    IntercomMasterPin,
    IntercomTemporaryPin,
    IntercomUserPin,
)


async def get_active_master_pin(db: AsyncSession, intercom_id: int) -> IntercomMasterPin | None:
    stmt = (
        select(IntercomMasterPin)
        .where(IntercomMasterPin.intercom_id == intercom_id, IntercomMasterPin.is_active.is_(True))
        .order_by(IntercomMasterPin.id.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_user_pins(db: AsyncSession, intercom_id: int) -> list[IntercomUserPin]:
    stmt = (
        select(IntercomUserPin)
        .where(IntercomUserPin.intercom_id == intercom_id, IntercomUserPin.is_active.is_(True))
        .order_by(IntercomUserPin.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_active_user_pin(db: AsyncSession, intercom_id: int, user_id: int) -> IntercomUserPin | None:
    stmt = select(IntercomUserPin).where(
        IntercomUserPin.intercom_id == intercom_id,
        IntercomUserPin.user_id == user_id,
        IntercomUserPin.is_active.is_(True),
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_temporary_pins(db: AsyncSession, intercom_id: int) -> list[IntercomTemporaryPin]:
    # Expired and used-up rows stay in the candidate set.
    stmt = (
        select(IntercomTemporaryPin)
        .where(
            IntercomTemporaryPin.intercom_id == intercom_id,
            IntercomTemporaryPin.is_active.is_(True),
        )
        .order_by(IntercomTemporaryPin.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def refresh_temporary_pin(db: AsyncSession, pin_id: int) -> IntercomTemporaryPin | None:
    stmt = (
        select(IntercomTemporaryPin)
        .where(IntercomTemporaryPin.id == pin_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_applicable_access_codes(
    db: AsyncSession, building_id: int, intercom_id: int
) -> list[IntercomAccessCode]:
    stmt = (
        select(IntercomAccessCode)
        .where(
            IntercomAccessCode.building_id == building_id,
            IntercomAccessCode.is_active.is_(True),
            or_(
                IntercomAccessCode.intercom_id == intercom_id,
                IntercomAccessCode.intercom_id.is_(None),
            ),
        )
        .order_by(IntercomAccessCode.created_at.desc(), IntercomAccessCode.id.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def refresh_access_code(db: AsyncSession, code_id: int) -> IntercomAccessCode | None:
    stmt = (
        select(IntercomAccessCode)
        .where(IntercomAccessCode.id == code_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _flush_new(db: AsyncSession, row, message: str):
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateCredentialError(message) from exc
    return row


async def add_master_pin(db: AsyncSession, row: IntercomMasterPin) -> IntercomMasterPin:
    return await _flush_new(db, row, "An active master pin already exists for this intercom")


async def add_user_pin(db: AsyncSession, row: IntercomUserPin) -> IntercomUserPin:
    return await _flush_new(db, row, "An active pin already exists for this user on this intercom")


async def add_temporary_pin(db: AsyncSession, row: IntercomTemporaryPin) -> IntercomTemporaryPin:
    return await _flush_new(db, row, "Temporary pin could not be stored")


async def add_access_code(db: AsyncSession, row: IntercomAccessCode) -> IntercomAccessCode:
    return await _flush_new(db, row, "Access code could not be stored")


async def supersede_master_pin(
    db: AsyncSession, intercom_id: int, pin_hash: str, actor_id: int | None
) -> IntercomMasterPin:
    """Retire the active master pin (if any) and append its replacement."""
    now = datetime.now(timezone.utc)
    await db.execute(
        update(IntercomMasterPin)
        .where(IntercomMasterPin.intercom_id == intercom_id, IntercomMasterPin.is_active.is_(True))
        .values(is_active=False, updated_by=actor_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    row = IntercomMasterPin(
        intercom_id=intercom_id,
        pin_hash=pin_hash,
        is_active=True,
        created_by=actor_id,
        created_at=now,
    )
    return await add_master_pin(db, row)


async def supersede_user_pin(
    db: AsyncSession, intercom_id: int, user_id: int, pin_hash: str, actor_id: int | None
) -> IntercomUserPin:
    now = datetime.now(timezone.utc)
    await db.execute(
        update(IntercomUserPin)
        .where(
            IntercomUserPin.intercom_id == intercom_id,
            IntercomUserPin.user_id == user_id,
            IntercomUserPin.is_active.is_(True),
        )
        .values(is_active=False, updated_by=actor_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    row = IntercomUserPin(
        intercom_id=intercom_id,
        user_id=user_id,
        pin_hash=pin_hash,
        is_active=True,
        created_by=actor_id,
        created_at=now,
    )
    return await add_user_pin(db, row)
