"""Directory tables, intercom credentials, access trail and audit log"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_intercom_access"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "buildings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_buildings_owner_user_id", "buildings", ["owner_user_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column(
            "home_building_id",
            sa.Integer(),
            sa.ForeignKey("buildings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "intercoms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), sa.ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_intercoms_building_id", "intercoms", ["building_id"])

    op.create_table(
        "user_building_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("building_id", sa.Integer(), sa.ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "building_id", name="uq_user_building_permission"),
    )
    op.create_index("ix_user_building_permissions_user_id", "user_building_permissions", ["user_id"])
    op.create_index("ix_user_building_permissions_building_id", "user_building_permissions", ["building_id"])

    op.create_table(
        "intercom_master_pins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("intercom_id", sa.Integer(), sa.ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pin_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_intercom_master_pins_intercom_id", "intercom_master_pins", ["intercom_id"])
    op.create_index(
        "uq_intercom_master_pins_active",
        "intercom_master_pins",
        ["intercom_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "intercom_user_pins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("intercom_id", sa.Integer(), sa.ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pin_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_intercom_user_pins_intercom_id", "intercom_user_pins", ["intercom_id"])
    op.create_index("ix_intercom_user_pins_user_id", "intercom_user_pins", ["user_id"])
    op.create_index(
        "uq_intercom_user_pins_active",
        "intercom_user_pins",
        ["intercom_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "intercom_temporary_pins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("intercom_id", sa.Integer(), sa.ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("pin_hash", sa.String(length=255), nullable=False),
        sa.Column("label", sa.String(length=100), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("uses_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("max_uses >= 1", name="ck_intercom_temporary_pins_max_uses_positive"),
        sa.CheckConstraint(
            "uses_count >= 0 AND uses_count <= max_uses",
            name="ck_intercom_temporary_pins_uses_within_max",
        ),
    )
    op.create_index("ix_intercom_temporary_pins_intercom_id", "intercom_temporary_pins", ["intercom_id"])
    op.create_index(
        "ix_intercom_temporary_pins_created_by_user_id",
        "intercom_temporary_pins",
        ["created_by_user_id"],
    )

    op.create_table(
        "intercom_temporary_pin_usages",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "temporary_pin_id",
            sa.Integer(),
            sa.ForeignKey("intercom_temporary_pins.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("used_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("used_from_ip", sa.String(length=50), nullable=True),
        sa.Column("device_info", sa.String(length=200), nullable=True),
    )
    op.create_index(
        "ix_intercom_temporary_pin_usages_temporary_pin_id",
        "intercom_temporary_pin_usages",
        ["temporary_pin_id"],
    )

    op.create_table(
        "intercom_access_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_id", sa.Integer(), sa.ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("intercom_id", sa.Integer(), sa.ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=True),
        sa.Column("code_type", sa.String(length=10), nullable=False, server_default="PIN"),
        sa.Column("code_hash", sa.String(length=255), nullable=False),
        sa.Column("is_single_use", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("valid_from", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_intercom_access_codes_building_id", "intercom_access_codes", ["building_id"])
    op.create_index("ix_intercom_access_codes_intercom_id", "intercom_access_codes", ["intercom_id"])
    op.create_index("ix_intercom_access_codes_created_by", "intercom_access_codes", ["created_by"])
    op.create_index(
        "ix_intercom_access_codes_building_intercom",
        "intercom_access_codes",
        ["building_id", "intercom_id"],
    )

    op.create_table(
        "intercom_access_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("intercom_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("credential_type", sa.String(length=20), nullable=False),
        sa.Column("credential_ref_id", sa.Integer(), nullable=True),
        sa.Column("is_success", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.String(length=200), nullable=True),
        sa.Column("occurred_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("ip_address", sa.String(length=50), nullable=True),
        sa.Column("device_info", sa.String(length=200), nullable=True),
    )
    op.create_index("ix_intercom_access_logs_intercom_id", "intercom_access_logs", ["intercom_id"])
    op.create_index("ix_intercom_access_logs_user_id", "intercom_access_logs", ["user_id"])
    op.create_index("ix_intercom_access_logs_occurred_at", "intercom_access_logs", ["occurred_at"])
    op.create_index(
        "ix_intercom_access_logs_intercom_occurred",
        "intercom_access_logs",
        ["intercom_id", "occurred_at"],
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("intercom_access_logs")
    op.drop_table("intercom_access_codes")
    op.drop_table("intercom_temporary_pin_usages")
    op.drop_table("intercom_temporary_pins")
    op.drop_table("intercom_user_pins")
    op.drop_table("intercom_master_pins")
    op.drop_table("user_building_permissions")
    op.drop_table("intercoms")
    op.drop_table("users")
    op.drop_table("buildings")
