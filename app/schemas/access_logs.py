from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AccessLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    intercom_id: int
    user_id: int | None = None
    credential_type: str
    credential_ref_id: int | None = None
    is_success: bool
    reason: str | None = None
    occurred_at: datetime
    ip_address: str | None = None
    device_info: str | None = None
