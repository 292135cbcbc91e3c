"""Access decision for a secret submitted at an intercom.

Every call produces exactly one ``intercom_access_logs`` row whose
``is_success`` matches the returned result. Devices only ever see the generic
failure reason; the detailed reason is kept in the log row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services import access_log, directory
from app.services.access_log import INTERNAL_ERROR_REASON, STORAGE_FAILURE_REASON, AccessAttempt
from app.services.access_tiers import DEFAULT_TIERS, AttemptContext, CredentialType

logger = logging.getLogger(__name__)

GENERIC_FAILURE_REASON = "invalid or expired credential"
UNKNOWN_INTERCOM_REASON = "unknown intercom"
INACTIVE_INTERCOM_REASON = "intercom inactive"
NO_MATCH_REASON = "no matching credential"
THROTTLED_REASON = "too many failed attempts"
RATE_LIMITED_REASON = "rate limited"
MALFORMED_REQUEST_REASON = "malformed request"


@dataclass(slots=True)
class VerificationResult:
    success: bool
    credential_type: CredentialType
    timestamp: datetime
    credential_ref_id: int | None = None
    user_id: int | None = None
    reason: str | None = None


def _denied(now: datetime) -> VerificationResult:
    return VerificationResult(
        success=False,
        credential_type=CredentialType.NONE,
        timestamp=now,
        reason=GENERIC_FAILURE_REASON,
    )


async def _deny(db: AsyncSession, entry: AccessAttempt, reason: str) -> VerificationResult:
    entry.reason = reason
    await access_log.record_and_commit(db, entry)
    logger.info(
        "Intercom access denied",
        extra={"event": {"name": "intercom_access_denied", "intercom_id": entry.intercom_id, "reason": reason}},
    )
    return _denied(entry.occurred_at)


async def _fail_closed(db: AsyncSession, entry: AccessAttempt, reason: str) -> VerificationResult:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback after verification failure also failed")
    failure = replace(entry, is_success=False, reason=reason, credential_type=CredentialType.NONE.value, credential_ref_id=None)
    await access_log.record_failure_best_effort(db, failure)
    return _denied(entry.occurred_at)


async def verify(
    db: AsyncSession,
    intercom_id: int,
    secret: str,
    *,
    ip: str | None = None,
    device_info: str | None = None,
    throttled: bool = False,
    tiers: Sequence = DEFAULT_TIERS,
) -> VerificationResult:
    now = datetime.now(timezone.utc)
    entry = AccessAttempt(
        intercom_id=intercom_id,
        is_success=False,
        ip_address=ip,
        device_info=device_info,
        occurred_at=now,
    )
    attempt = AttemptContext(ip=ip, device_info=device_info)
    try:
        if throttled:
            return await _deny(db, entry, THROTTLED_REASON)

        intercom = await directory.get_intercom(db, intercom_id)
        if intercom is None:
            return await _deny(db, entry, UNKNOWN_INTERCOM_REASON)
        if not intercom.is_active:
            return await _deny(db, entry, INACTIVE_INTERCOM_REASON)

        outcome = None
        for tier in tiers:
            outcome = await tier.try_match(db, intercom, secret, now, attempt)
            if outcome is not None:
                break
        if outcome is None:
            reason = attempt.near_misses[0] if attempt.near_misses else NO_MATCH_REASON
            return await _deny(db, entry, reason)

        entry.is_success = True
        entry.credential_type = outcome.credential_type.value
        entry.credential_ref_id = outcome.credential_ref_id
        entry.user_id = outcome.user_id
        await access_log.record_and_commit(db, entry)
    except SQLAlchemyError:
        logger.exception(
            "Intercom verification failed on storage; denying",
            extra={"event": {"name": "intercom_access_storage_failure", "intercom_id": intercom_id}},
        )
        return await _fail_closed(db, entry, STORAGE_FAILURE_REASON)
    except Exception:
        logger.exception(
            "Intercom verification raised unexpectedly; denying",
            extra={"event": {"name": "intercom_access_internal_error", "intercom_id": intercom_id}},
        )
        return await _fail_closed(db, entry, INTERNAL_ERROR_REASON)

    logger.info(
        "Intercom access granted",
        extra={
            "event": {
                "name": "intercom_access_granted",
                "intercom_id": intercom_id,
                "credential_type": outcome.credential_type.value,
                "credential_ref_id": outcome.credential_ref_id,
            }
        },
    )
    return VerificationResult(
        success=True,
        credential_type=outcome.credential_type,
        timestamp=now,
        credential_ref_id=outcome.credential_ref_id,
        user_id=outcome.user_id,
    )


async def record_rejected_request(
    db: AsyncSession,
    intercom_id: int,
    reason: str,
    *,
    ip: str | None = None,
    device_info: str | None = None,
) -> None:
    """Log a verify call refused before any credential was evaluated."""
    entry = AccessAttempt(
        intercom_id=intercom_id,
        is_success=False,
        reason=reason,
        ip_address=ip,
        device_info=device_info,
    )
    await access_log.record_failure_best_effort(db, entry)
    logger.info(
        "Intercom verify request rejected",
        extra={"event": {"name": "intercom_access_rejected", "intercom_id": intercom_id, "reason": reason}},
    )
