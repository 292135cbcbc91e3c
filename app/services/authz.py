"""Role checks and building-scoped visibility for management callers.

Roles are coarse permission buckets (``app.core.permissions``); the building
relationship is evaluated here. List endpoints receive a SQLAlchemy predicate
rather than filtering in Python.
"""

from sqlalchemy import or_, select, union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.core.permissions import PermissionCode, Role, permissions_for_role
from app.models import Building, Intercom, IntercomAccessCode, IntercomAccessLog, User, UserBuildingPermission


def role_of(user: User) -> Role | None:
    try:
        return Role(str(user.role).strip().upper())
    except ValueError:
        return None


def is_super_admin(user: User) -> bool:
    return role_of(user) == Role.SUPER_ADMIN


def is_tenant(user: User) -> bool:
    return role_of(user) == Role.TENANT


def check_permission(user: User, permission_code: PermissionCode | str) -> bool:
    if user is None or not user.is_active:
        return False
    try:
        code = PermissionCode(permission_code)
    except ValueError:
        return False
    return code in permissions_for_role(role_of(user))


def resolve_tenant_building_id(user: User) -> int | None:
    if not is_tenant(user):
        return None
    return user.home_building_id


def managed_buildings_query(user_id: int):
    """Building ids a staff user manages: explicit grants plus owned or created buildings."""
    granted = select(UserBuildingPermission.building_id).where(
        UserBuildingPermission.user_id == user_id,
        UserBuildingPermission.is_active.is_(True),
    )
    owned = select(Building.id).where(or_(Building.owner_user_id == user_id, Building.created_by == user_id))
    return union(granted, owned)


def _managed_building_ids(user_id: int):
    managed = managed_buildings_query(user_id).subquery()
    return select(managed.c.building_id)


async def has_building_access(db: AsyncSession, user: User, building_id: int) -> bool:
    if user is None or not user.is_active:
        return False
    if is_super_admin(user):
        return True
    if is_tenant(user):
        return resolve_tenant_building_id(user) == building_id

    stmt = select(UserBuildingPermission.id).where(
        UserBuildingPermission.user_id == user.id,
        UserBuildingPermission.building_id == building_id,
        UserBuildingPermission.is_active.is_(True),
    )
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        return True

    building = await db.get(Building, building_id)
    if building is None:
        return False
    return building.owner_user_id == user.id or building.created_by == user.id


def access_code_scope(user: User) -> ColumnElement | None:
    if is_super_admin(user):
        return None
    if is_tenant(user):
        return IntercomAccessCode.created_by == user.id
    return IntercomAccessCode.building_id.in_(_managed_building_ids(user.id))


def access_log_scope(user: User) -> ColumnElement | None:
    if is_super_admin(user):
        return None
    if is_tenant(user):
        return IntercomAccessLog.user_id == user.id
    intercom_ids = select(Intercom.id).where(Intercom.building_id.in_(_managed_building_ids(user.id)))
    return IntercomAccessLog.intercom_id.in_(intercom_ids)
