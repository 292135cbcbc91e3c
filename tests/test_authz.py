import pytest
from sqlalchemy.dialects import postgresql

from app.core.permissions import PermissionCode, Role, permissions_for_role
from app.models import UserBuildingPermission
from app.services import authz
from conftest import FakeAsyncSession, FakeResult, make_building, make_user, select_handler


def _sql(expr) -> str:
    return str(expr.compile(dialect=postgresql.dialect()))


def test_super_admin_holds_every_permission():
    admin = make_user(role=Role.SUPER_ADMIN)
    assert all(authz.check_permission(admin, code) for code in PermissionCode)


@pytest.mark.parametrize("role", [Role.TENANT, Role.PROPERTY_MANAGER, Role.FRONT_DESK])
def test_privileged_codes_are_super_admin_only(role):
    user = make_user(role=role)
    for code in (
        PermissionCode.MASTER_PIN_MANAGE,
        PermissionCode.USER_PIN_RESET,
        PermissionCode.INTERCOM_ACCESS_LOG_VIEW,
        PermissionCode.AUDIT_LOG_VIEW,
    ):
        assert authz.check_permission(user, code) is False
    assert authz.check_permission(user, PermissionCode.TEMPORARY_PIN_MANAGE) is True
    assert authz.check_permission(user, PermissionCode.ACCESS_CODE_MANAGE) is True


def test_inactive_or_unknown_roles_get_nothing():
    disabled_admin = make_user(role=Role.SUPER_ADMIN, is_active=False)
    assert authz.check_permission(disabled_admin, PermissionCode.ACCESS_LOG_VIEW) is False
    assert authz.check_permission(make_user(role="JANITOR"), PermissionCode.ACCESS_LOG_VIEW) is False
    assert authz.check_permission(make_user(role=Role.TENANT), "not.a.permission") is False
    assert permissions_for_role(" tenant ") == permissions_for_role(Role.TENANT)


@pytest.mark.asyncio
async def test_tenant_access_is_home_building_only():
    tenant = make_user(role=Role.TENANT, home_building_id=3)
    db = FakeAsyncSession()

    assert await authz.has_building_access(db, tenant, 3) is True
    assert await authz.has_building_access(db, tenant, 4) is False
    assert db.executed == []


@pytest.mark.asyncio
async def test_staff_access_via_explicit_grant():
    manager = make_user(id=20, role=Role.PROPERTY_MANAGER)
    db = FakeAsyncSession().on_execute(select_handler(UserBuildingPermission, FakeResult(scalar=1)))

    assert await authz.has_building_access(db, manager, 3) is True


@pytest.mark.asyncio
async def test_staff_access_via_owned_or_created_building():
    manager = make_user(id=20, role=Role.FRONT_DESK)
    db = FakeAsyncSession().register(
        make_building(id=3, owner_user_id=20),
        make_building(id=4, created_by=20),
        make_building(id=5, owner_user_id=21),
    )

    assert await authz.has_building_access(db, manager, 3) is True
    assert await authz.has_building_access(db, manager, 4) is True
    assert await authz.has_building_access(db, manager, 5) is False
    assert await authz.has_building_access(db, manager, 6) is False


def test_managed_buildings_union_grants_and_ownership():
    sql = _sql(authz.managed_buildings_query(20))
    assert "FROM user_building_permissions" in sql
    assert "UNION" in sql
    assert "buildings.owner_user_id = " in sql
    assert "buildings.created_by = " in sql


def test_access_code_scope_per_role():
    assert authz.access_code_scope(make_user(role=Role.SUPER_ADMIN)) is None
    assert _sql(authz.access_code_scope(make_user(id=5, role=Role.TENANT))).startswith(
        "intercom_access_codes.created_by = "
    )
    staff = _sql(authz.access_code_scope(make_user(id=20, role=Role.PROPERTY_MANAGER)))
    assert staff.startswith("intercom_access_codes.building_id IN (SELECT")
    assert "user_building_permissions" in staff


def test_access_log_scope_per_role():
    assert authz.access_log_scope(make_user(role=Role.SUPER_ADMIN)) is None
    assert _sql(authz.access_log_scope(make_user(id=5, role=Role.TENANT))).startswith(
        "intercom_access_logs.user_id = "
    )
    staff = _sql(authz.access_log_scope(make_user(id=20, role=Role.FRONT_DESK)))
    assert staff.startswith("intercom_access_logs.intercom_id IN (SELECT intercoms.id")
    assert "intercoms.building_id IN (SELECT" in staff
