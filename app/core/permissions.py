from enum import Enum
from typing import Iterable, List


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    FRONT_DESK = "FRONT_DESK"
    TENANT = "TENANT"


class PermissionCode(str, Enum):
    # Administrative change trail
    AUDIT_LOG_VIEW = "audit_log.view"

    # Intercom credentials
    MASTER_PIN_MANAGE = "intercom.master_pin.manage"
    USER_PIN_RESET = "intercom.user_pin.reset"
    USER_PIN_SELF_MANAGE = "intercom.user_pin.self_manage"
    TEMPORARY_PIN_MANAGE = "intercom.temporary_pin.manage"
    TEMPORARY_PIN_USAGE_VIEW = "intercom.temporary_pin.usage_view"

    # Access codes
    ACCESS_CODE_VIEW = "access_code.view"
    ACCESS_CODE_MANAGE = "access_code.manage"

    # Verification audit trail
    ACCESS_LOG_VIEW = "access_log.view"
    INTERCOM_ACCESS_LOG_VIEW = "intercom.access_log.view"

    @classmethod
    def list_all(cls) -> List[str]:
        return [code.value for code in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> List[str]:
        """Return unique permission codes that are valid members."""
        seen = set()
        normalized: list[str] = []
        for value in values:
            try:
                code = cls(value)
            except ValueError:
                continue
            if code.value not in seen:
                seen.add(code.value)
                normalized.append(code.value)
        return normalized


_RESIDENT_PERMISSIONS = frozenset(
    {
        PermissionCode.USER_PIN_SELF_MANAGE,
        PermissionCode.TEMPORARY_PIN_MANAGE,
        PermissionCode.ACCESS_CODE_VIEW,
        PermissionCode.ACCESS_CODE_MANAGE,
        PermissionCode.TEMPORARY_PIN_USAGE_VIEW,
        PermissionCode.ACCESS_LOG_VIEW,
    }
)

# Staff share the resident bucket; their reach is widened by building grants, not codes.
_STAFF_PERMISSIONS = _RESIDENT_PERMISSIONS

# Role buckets; building scoping is applied on top of these by services.authz.
ROLE_PERMISSIONS: dict[Role, frozenset[PermissionCode]] = {
    Role.SUPER_ADMIN: frozenset(PermissionCode),
    Role.PROPERTY_MANAGER: frozenset(_STAFF_PERMISSIONS),
    Role.FRONT_DESK: frozenset(_STAFF_PERMISSIONS),
    Role.TENANT: _RESIDENT_PERMISSIONS,
}


def permissions_for_role(role: Role | str | None) -> frozenset[PermissionCode]:
    if role is None:
        return frozenset()
    try:
        resolved = role if isinstance(role, Role) else Role(str(role).strip().upper())
    except ValueError:
        return frozenset()
    return ROLE_PERMISSIONS.get(resolved, frozenset())
