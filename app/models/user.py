from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func

from app.db.base import Base


class User(Base):
    """Directory copy of an authenticated principal.

    Users are provisioned by the identity service; this service only reads
    them to resolve the caller's role and building relationships.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(50), nullable=False, default="TENANT")
    # Residence of a tenant; staff relationships live in user_building_permissions.
    home_building_id = Column(Integer, ForeignKey("buildings.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
