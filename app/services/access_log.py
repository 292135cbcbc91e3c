"""Append-only trail of intercom verification attempts.

Rows are inserted and never updated or deleted. A verification call commits
its row together with any pending usage-ledger changes, so a success is never
returned without a durable record.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.core.logging import get_audit_logger
from app.models import Intercom, IntercomAccessLog, IntercomTemporaryPin, IntercomTemporaryPinUsage

logger = logging.getLogger(__name__)

STORAGE_FAILURE_REASON = "storage failure"
INTERNAL_ERROR_REASON = "internal error"


@dataclass(slots=True)
class AccessAttempt:
    intercom_id: int
    is_success: bool
    reason: str | None = None
    credential_type: str = "None"
    credential_ref_id: int | None = None
    user_id: int | None = None
    ip_address: str | None = None
    device_info: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class AccessLogFilters:
    building_id: int | None = None
    intercom_id: int | None = None
    code_id: int | None = None
    user_id: int | None = None
    credential_type: str | None = None
    success: bool | None = None
    occurred_from: datetime | None = None
    occurred_to: datetime | None = None


@dataclass(slots=True)
class UsageFilters:
    temporary_pin_id: int | None = None
    created_by_user_id: int | None = None
    used_from: datetime | None = None
    used_to: datetime | None = None


def record(db: AsyncSession, entry: AccessAttempt) -> IntercomAccessLog:
    row = IntercomAccessLog(
        intercom_id=entry.intercom_id,
        user_id=entry.user_id,
        credential_type=entry.credential_type,
        credential_ref_id=entry.credential_ref_id,
        is_success=entry.is_success,
        reason=entry.reason,
        occurred_at=entry.occurred_at,
        ip_address=entry.ip_address,
        device_info=entry.device_info,
    )
    db.add(row)
    return row


async def record_and_commit(db: AsyncSession, entry: AccessAttempt) -> IntercomAccessLog:
    row = record(db, entry)
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    return row


async def record_failure_best_effort(db: AsyncSession, entry: AccessAttempt) -> IntercomAccessLog | None:
    """Persist a denial after a failed transaction; never raises.

    When even the standalone insert fails the full entry goes to the
    ``app.audit`` stream instead.
    """
    failure = replace(entry, is_success=False, reason=entry.reason or STORAGE_FAILURE_REASON)
    try:
        row = record(db, failure)
        await db.commit()
        return row
    except SQLAlchemyError:
        logger.exception("Access log row could not be persisted")
        try:
            await db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after access log failure also failed")
        payload = asdict(failure)
        payload["occurred_at"] = failure.occurred_at.isoformat()
        get_audit_logger().error(
            "Unpersisted intercom access attempt",
            extra={"event": {"name": "intercom_access_unpersisted", **payload}},
        )
        return None


def _log_conditions(filters: AccessLogFilters) -> list[ColumnElement]:
    conditions: list[ColumnElement] = []
    if filters.intercom_id is not None:
        conditions.append(IntercomAccessLog.intercom_id == filters.intercom_id)
    if filters.building_id is not None:
        conditions.append(
            IntercomAccessLog.intercom_id.in_(
                select(Intercom.id).where(Intercom.building_id == filters.building_id)
            )
        )
    if filters.code_id is not None:
        conditions.append(IntercomAccessLog.credential_type == "AccessCode")
        conditions.append(IntercomAccessLog.credential_ref_id == filters.code_id)
    if filters.user_id is not None:
        conditions.append(IntercomAccessLog.user_id == filters.user_id)
    if filters.credential_type:
        conditions.append(IntercomAccessLog.credential_type == filters.credential_type)
    if filters.success is not None:
        conditions.append(IntercomAccessLog.is_success.is_(filters.success))
    if filters.occurred_from is not None:
        conditions.append(IntercomAccessLog.occurred_at >= filters.occurred_from)
    if filters.occurred_to is not None:
        conditions.append(IntercomAccessLog.occurred_at <= filters.occurred_to)
    return conditions


async def list_access_logs(
    db: AsyncSession,
    scope: ColumnElement | None,
    filters: AccessLogFilters,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[IntercomAccessLog], int]:
    conditions = _log_conditions(filters)
    if scope is not None:
        conditions.append(scope)

    count_stmt = select(func.count()).select_from(IntercomAccessLog).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(IntercomAccessLog)
        .where(*conditions)
        .order_by(IntercomAccessLog.occurred_at.desc(), IntercomAccessLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_temporary_pin_usages(
    db: AsyncSession,
    intercom_id: int,
    filters: UsageFilters,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[tuple[IntercomTemporaryPinUsage, IntercomTemporaryPin]], int]:
    conditions: list[ColumnElement] = [IntercomTemporaryPin.intercom_id == intercom_id]
    if filters.temporary_pin_id is not None:
        conditions.append(IntercomTemporaryPinUsage.temporary_pin_id == filters.temporary_pin_id)
    if filters.created_by_user_id is not None:
        conditions.append(IntercomTemporaryPin.created_by_user_id == filters.created_by_user_id)
    if filters.used_from is not None:
        conditions.append(IntercomTemporaryPinUsage.used_at >= filters.used_from)
    if filters.used_to is not None:
        conditions.append(IntercomTemporaryPinUsage.used_at <= filters.used_to)

    count_stmt = (
        select(func.count())
        .select_from(IntercomTemporaryPinUsage)
        .join(IntercomTemporaryPin, IntercomTemporaryPin.id == IntercomTemporaryPinUsage.temporary_pin_id)
        .where(*conditions)
    )
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(IntercomTemporaryPinUsage, IntercomTemporaryPin)
        .join(IntercomTemporaryPin, IntercomTemporaryPin.id == IntercomTemporaryPinUsage.temporary_pin_id)
        .where(*conditions)
        .order_by(IntercomTemporaryPinUsage.used_at.desc(), IntercomTemporaryPinUsage.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await db.execute(stmt)).all()
    return [(usage, pin) for usage, pin in rows], total
