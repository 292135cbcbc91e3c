from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)

from app.db.base import Base


class IntercomMasterPin(Base):
    """Shared staff/maintenance PIN; rotation appends a row and retires the old one."""

    __tablename__ = "intercom_master_pins"
    __table_args__ = (
        Index(
            "uq_intercom_master_pins_active",
            "intercom_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    intercom_id = Column(Integer, ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False, index=True)
    pin_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class IntercomUserPin(Base):
    __tablename__ = "intercom_user_pins"
    __table_args__ = (
        Index(
            "uq_intercom_user_pins_active",
            "intercom_id",
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    intercom_id = Column(Integer, ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pin_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class IntercomTemporaryPin(Base):
    """Guest PIN limited by ``expires_at`` and ``max_uses``.

    Exhaustion is derived from ``uses_count``/``expires_at`` at verification
    time; ``is_active`` only changes on an explicit revoke.
    """

    __tablename__ = "intercom_temporary_pins"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="max_uses_positive"),
        CheckConstraint("uses_count >= 0 AND uses_count <= max_uses", name="uses_within_max"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    intercom_id = Column(Integer, ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=False, index=True)
    # Pins and their usage history outlive the account that issued them.
    created_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    pin_hash = Column(String(255), nullable=False)
    label = Column(String(100), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    max_uses = Column(Integer, nullable=False, default=1, server_default="1")
    uses_count = Column(Integer, nullable=False, default=0, server_default="0")
    first_used_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class IntercomTemporaryPinUsage(Base):
    __tablename__ = "intercom_temporary_pin_usages"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    temporary_pin_id = Column(
        Integer,
        ForeignKey("intercom_temporary_pins.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    used_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    used_from_ip = Column(String(50), nullable=True)
    device_info = Column(String(200), nullable=True)


class IntercomAccessCode(Base):
    """PIN or QR payload scoped to an intercom, or the whole building when ``intercom_id`` is null."""

    __tablename__ = "intercom_access_codes"
    __table_args__ = (
        Index("ix_intercom_access_codes_building_intercom", "building_id", "intercom_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    building_id = Column(Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True)
    intercom_id = Column(Integer, ForeignKey("intercoms.id", ondelete="CASCADE"), nullable=True, index=True)
    code_type = Column(String(10), nullable=False, default="PIN", server_default="PIN")
    code_hash = Column(String(255), nullable=False)
    is_single_use = Column(Boolean, nullable=False, default=False, server_default="false")
    valid_from = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class IntercomAccessLog(Base):
    """One row per verification attempt. Never updated or deleted."""

    __tablename__ = "intercom_access_logs"
    __table_args__ = (
        Index("ix_intercom_access_logs_intercom_occurred", "intercom_id", "occurred_at"),
    )

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    # No FK: attempts against unknown intercoms are recorded too.
    intercom_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    credential_type = Column(String(20), nullable=False, default="None")
    credential_ref_id = Column(Integer, nullable=True)
    is_success = Column(Boolean, nullable=False)
    reason = Column(String(200), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    ip_address = Column(String(50), nullable=True)
    device_info = Column(String(200), nullable=True)
