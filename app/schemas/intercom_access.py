from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else value


class MasterPinSet(BaseModel):
    pin: str

    @field_validator("pin")
    @classmethod
    def strip_pin(cls, v: str) -> str:
        return _strip(v)


class UserPinSet(BaseModel):
    pin: str
    # Required when a super admin resets someone else's pin.
    master_pin: str | None = None

    @field_validator("pin", "master_pin")
    @classmethod
    def strip_values(cls, v: str | None) -> str | None:
        return _strip(v)


class OwnPinUpdate(BaseModel):
    new_pin: str
    old_pin: str | None = None

    @field_validator("new_pin", "old_pin")
    @classmethod
    def strip_values(cls, v: str | None) -> str | None:
        return _strip(v)


class PinOperationResult(BaseModel):
    intercom_id: int
    user_id: int | None = None
    pin_id: int
    message: str


class TemporaryPinCreate(BaseModel):
    pin: str
    expires_at: datetime
    max_uses: int = 1
    label: str | None = Field(default=None, max_length=100)

    @field_validator("pin", "label")
    @classmethod
    def strip_values(cls, v: str | None) -> str | None:
        return _strip(v)


class TemporaryPinOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    intercom_id: int
    created_by_user_id: int | None = None
    label: str | None = None
    expires_at: datetime
    max_uses: int
    uses_count: int
    first_used_at: datetime | None = None
    last_used_at: datetime | None = None
    is_active: bool
    created_at: datetime | None = None


class TemporaryPinUsageOut(BaseModel):
    id: int
    temporary_pin_id: int
    label: str | None = None
    used_at: datetime
    used_from_ip: str | None = None
    device_info: str | None = None


class VerifyRequest(BaseModel):
    pin: str
    device_info: str | None = None

    @field_validator("pin")
    @classmethod
    def strip_pin(cls, v: str) -> str:
        return _strip(v)


class VerifyResponse(BaseModel):
    granted: bool
    reason: str | None = None
    credential_type: str
    credential_ref_id: int | None = None
    timestamp: datetime
