from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint

from salon_backend.core.database import Base


class Staff(Base):
    """Staff account; never hard-deleted, deactivated through ``is_active``."""

    __tablename__ = "staff"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_staff_tenant_email"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="STAFF")
    is_active = Column(Boolean, nullable=False, default=True)

    failed_login_count = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_secret = Column(String(64), nullable=True)
    # JSON list of the unused backup codes
    backup_codes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
