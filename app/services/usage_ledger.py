"""Compare-and-swap consumption for temporary pins and single-use access codes.

Nothing in here commits. The verification engine commits the consumed use,
the usage row and the access-log row in one transaction.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import IntercomAccessCode, IntercomTemporaryPin, IntercomTemporaryPinUsage

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 1


async def try_consume_temporary_pin(
    db: AsyncSession, pin_id: int, expected_previous_count: int, now: datetime
) -> bool:
    stmt = (
        update(IntercomTemporaryPin)
        .where(
            IntercomTemporaryPin.id == pin_id,
            IntercomTemporaryPin.uses_count == expected_previous_count,
            IntercomTemporaryPin.uses_count < IntercomTemporaryPin.max_uses,
            IntercomTemporaryPin.is_active.is_(True),
            IntercomTemporaryPin.expires_at >= now,
        )
        .values(
            uses_count=IntercomTemporaryPin.uses_count + 1,
            last_used_at=now,
            first_used_at=func.coalesce(IntercomTemporaryPin.first_used_at, now),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


def record_temporary_pin_usage(
    db: AsyncSession,
    pin_id: int,
    now: datetime,
    ip: str | None = None,
    device_info: str | None = None,
) -> IntercomTemporaryPinUsage:
    usage = IntercomTemporaryPinUsage(
        temporary_pin_id=pin_id,
        used_at=now,
        used_from_ip=ip,
        device_info=device_info,
    )
    db.add(usage)
    return usage


async def try_consume_single_use_code(db: AsyncSession, code_id: int) -> bool:
    stmt = (
        update(IntercomAccessCode)
        .where(
            IntercomAccessCode.id == code_id,
            IntercomAccessCode.is_active.is_(True),
            IntercomAccessCode.is_single_use.is_(True),
        )
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def consume_with_retry(
    snapshot: Any,
    attempt: Callable[[Any], Awaitable[bool]],
    refresh: Callable[[], Awaitable[Any | None]],
    *,
    retries: int = DEFAULT_RETRIES,
) -> Any | None:
    """Run ``attempt`` against ``snapshot``, re-reading via ``refresh`` after a collision.

    ``refresh`` returns ``None`` when the re-read row is no longer usable.
    Returns the snapshot that was consumed, or ``None`` when the row is
    exhausted or every round collided.
    """
    current = snapshot
    for round_no in range(retries + 1):
        if await attempt(current):
            return current
        if round_no == retries:
            break
        logger.info(
            "Usage compare-and-swap collided; re-reading",
            extra={"event": {"name": "usage_cas_retry", "row_id": getattr(current, "id", None)}},
        )
        current = await refresh()
        if current is None:
            return None
    logger.warning(
        "Usage compare-and-swap collided again; treating as exhausted",
        extra={"event": {"name": "usage_cas_exhausted", "row_id": getattr(current, "id", None)}},
    )
    return None
