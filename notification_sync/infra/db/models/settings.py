"""Notification settings database model."""
from sqlalchemy import Boolean, Column, DateTime, String, Text

from notification_sync.infra.db.base import Base
from notification_sync.infra.db.models.notification import _utcnow


class NotificationSettingsModel(Base):
    """Per-user, per-category opt-in record. Primary key is (user_id, id)."""

    __tablename__ = "notification_settings"

    user_id = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    type = Column(String, nullable=False)
    label = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    enabled = Column(Boolean, nullable=False, default=True)
    push_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
