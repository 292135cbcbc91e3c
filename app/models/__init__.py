from app.models.audit_log import AuditLog
from app.models.building import Building, Intercom, UserBuildingPermission
from app.models.intercom_access import (
    IntercomAccessCode,
    IntercomAccessLog,
    IntercomMasterPin,
    IntercomTemporaryPin,
    IntercomTemporaryPinUsage,
    IntercomUserPin,
)
from app.models.user import User

__all__ = [
    "AuditLog",
    "Building",
    "Intercom",
    "UserBuildingPermission",
    "IntercomAccessCode",
    "IntercomAccessLog",
    "IntercomMasterPin",
    "IntercomTemporaryPin",
    "IntercomTemporaryPinUsage",
    "IntercomUserPin",
    "User",
]
