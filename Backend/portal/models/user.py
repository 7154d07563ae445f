"""
SQLAlchemy ORM model for portal Users.

- Role stored as an enum column (user / admin / super_admin)
- Approval tri-state: is_approved True / False / None (pending)
- Password stored as password_hash only
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (Column, String, Boolean, DateTime, Text, Enum as SAEnum, Index, ForeignKey, Uuid)

from portal.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


UserRoleEnum = SAEnum("user", "admin", "super_admin", name="user_role")

ApprovalStatusEnum = SAEnum("pending", "approved", "rejected", name="approval_status")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)  # always stored lower-cased
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(200), nullable=True)
    organization_name = Column(String(200), nullable=True)
    role_job_title = Column(String(200), nullable=True)
    role = Column(UserRoleEnum, nullable=False, default="user")

    is_approved = Column(Boolean, nullable=True, default=False)
    approval_status = Column(ApprovalStatusEnum, nullable=False, default="pending")
    approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    is_first_time = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    previous_login_at = Column(DateTime(timezone=True), nullable=True)  # last_login_at before the current session

    __table_args__ = (
        Index("ix_users_role_approval_status", "role", "approval_status"),
        Index("ix_users_created_at", "created_at"),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in ("admin", "super_admin")

    @property
    def has_access(self) -> bool:
        """Staff accounts are always treated as approved."""
        return self.is_staff or self.is_approved is True
