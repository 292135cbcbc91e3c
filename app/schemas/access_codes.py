from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

ALLOWED_CODE_TYPES = {"PIN", "QR"}


class AccessCodeCreate(BaseModel):
    building_id: int | None = None
    intercom_id: int | None = None
    code: str
    code_type: str = "PIN"
    is_single_use: bool = False
    valid_from: datetime | None = None
    expires_at: datetime | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("code_type")
    @classmethod
    def validate_code_type(cls, v: str) -> str:
        normalized = (v or "").strip().upper()
        if normalized not in ALLOWED_CODE_TYPES:
            raise ValueError(f"Invalid code_type. Allowed: {sorted(ALLOWED_CODE_TYPES)}")
        return normalized


class AccessCodeUpdate(BaseModel):
    code: str | None = None
    is_single_use: bool | None = None
    valid_from: datetime | None = None
    expires_at: datetime | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v


class AccessCodeOut(BaseModel):
    """Never carries the code itself; only the hash is stored."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    building_id: int
    intercom_id: int | None = None
    code_type: str
    is_single_use: bool
    valid_from: datetime | None = None
    expires_at: datetime | None = None
    is_active: bool
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
