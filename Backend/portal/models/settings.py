"""
Notification settings.

One global row (admin_id NULL) plus optional per-admin override rows.
NULL toggles on an override row inherit the global value.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Uuid

from portal.database import Base
from portal.models.user import utcnow


class NotificationSettings(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    notify_on_approve = Column(Boolean, nullable=True)
    notify_on_reject = Column(Boolean, nullable=True)
    notify_on_delete = Column(Boolean, nullable=True)
    notify_on_registration = Column(Boolean, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
