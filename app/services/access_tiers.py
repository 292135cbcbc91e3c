"""Credential tiers evaluated by the verification engine.

Each tier is a strategy with a single ``try_match`` coroutine. The engine walks
``DEFAULT_TIERS`` in order and stops at the first outcome; a tier returning
``None`` means "no match here", optionally leaving a near-miss reason on the
attempt for the audit row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import averify_secret
from app.models import Intercom, IntercomAccessCode, IntercomTemporaryPin
from app.services import credential_store, usage_ledger


class CredentialType(str, Enum):
    MASTER = "Master"
    USER = "User"
    TEMPORARY = "Temporary"
    ACCESS_CODE = "AccessCode"
    NONE = "None"


@dataclass(slots=True)
class MatchOutcome:
    credential_type: CredentialType
    credential_ref_id: int | None = None
    user_id: int | None = None


@dataclass(slots=True)
class AttemptContext:
    ip: str | None = None
    device_info: str | None = None
    near_misses: list[str] = field(default_factory=list)


def _as_aware(value: datetime | None, reference: datetime) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=reference.tzinfo)


def temporary_pin_exhaustion(pin: IntercomTemporaryPin, now: datetime) -> str | None:
    """Reason the pin cannot be used at ``now``, or ``None`` when it still can."""
    if not pin.is_active:
        return "temporary pin revoked"
    if now > _as_aware(pin.expires_at, now):
        return "temporary pin expired"
    if pin.uses_count >= pin.max_uses:
        return "max uses reached"
    return None


def access_code_unusable(code: IntercomAccessCode, now: datetime) -> str | None:
    if not code.is_active:
        return "access code inactive"
    valid_from = _as_aware(code.valid_from, now)
    if valid_from is not None and now < valid_from:
        return "access code not yet valid"
    expires_at = _as_aware(code.expires_at, now)
    if expires_at is not None and now > expires_at:
        return "access code expired"
    return None


class MasterPinTier:
    name = CredentialType.MASTER

    async def try_match(
        self, db: AsyncSession, target: Intercom, secret: str, now: datetime, attempt: AttemptContext
    ) -> MatchOutcome | None:
        pin = await credential_store.get_active_master_pin(db, target.id)
        if pin is None or not await averify_secret(secret, pin.pin_hash):
            return None
        return MatchOutcome(CredentialType.MASTER, credential_ref_id=pin.id)


class UserPinTier:
    name = CredentialType.USER

    async def try_match(
        self, db: AsyncSession, target: Intercom, secret: str, now: datetime, attempt: AttemptContext
    ) -> MatchOutcome | None:
        for pin in await credential_store.get_active_user_pins(db, target.id):
            if await averify_secret(secret, pin.pin_hash):
                return MatchOutcome(CredentialType.USER, credential_ref_id=pin.id, user_id=pin.user_id)
        return None


class TemporaryPinTier:
    """Hash first, then expiry and remaining uses; a use is consumed by compare-and-swap."""

    name = CredentialType.TEMPORARY

    async def try_match(
        self, db: AsyncSession, target: Intercom, secret: str, now: datetime, attempt: AttemptContext
    ) -> MatchOutcome | None:
        for pin in await credential_store.get_active_temporary_pins(db, target.id):
            if not await averify_secret(secret, pin.pin_hash):
                continue
            reason = temporary_pin_exhaustion(pin, now)
            if reason:
                attempt.near_misses.append(reason)
                continue

            async def consume(row: IntercomTemporaryPin) -> bool:
                return await usage_ledger.try_consume_temporary_pin(db, row.id, row.uses_count, now)

            async def refresh(pin_id: int = pin.id) -> IntercomTemporaryPin | None:
                row = await credential_store.refresh_temporary_pin(db, pin_id)
                if row is None:
                    return None
                stale = temporary_pin_exhaustion(row, now)
                if stale:
                    attempt.near_misses.append(stale)
                    return None
                return row

            consumed = await usage_ledger.consume_with_retry(pin, consume, refresh)
            if consumed is None:
                if not attempt.near_misses:
                    attempt.near_misses.append("max uses reached")
                continue
            usage_ledger.record_temporary_pin_usage(db, consumed.id, now, attempt.ip, attempt.device_info)
            return MatchOutcome(
                CredentialType.TEMPORARY,
                credential_ref_id=consumed.id,
                user_id=consumed.created_by_user_id,
            )
        return None


class AccessCodeTier:
    """Intercom-scoped and building-wide codes; single-use codes deactivate on first use."""

    name = CredentialType.ACCESS_CODE

    async def try_match(
        self, db: AsyncSession, target: Intercom, secret: str, now: datetime, attempt: AttemptContext
    ) -> MatchOutcome | None:
        codes = await credential_store.get_applicable_access_codes(db, target.building_id, target.id)
        for code in codes:
            if not await averify_secret(secret, code.code_hash):
                continue
            reason = access_code_unusable(code, now)
            if reason:
                attempt.near_misses.append(reason)
                continue
            if code.is_single_use:

                async def consume(row: IntercomAccessCode) -> bool:
                    return await usage_ledger.try_consume_single_use_code(db, row.id)

                async def refresh(code_id: int = code.id) -> IntercomAccessCode | None:
                    row = await credential_store.refresh_access_code(db, code_id)
                    if row is None or access_code_unusable(row, now):
                        return None
                    return row

                consumed = await usage_ledger.consume_with_retry(code, consume, refresh)
                if consumed is None:
                    attempt.near_misses.append("access code already used")
                    continue
            return MatchOutcome(
                CredentialType.ACCESS_CODE,
                credential_ref_id=code.id,
                user_id=code.created_by,
            )
        return None


DEFAULT_TIERS = (MasterPinTier(), UserPinTier(), TemporaryPinTier(), AccessCodeTier())
