"""Notification database model."""
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text

from notification_sync.infra.db.base import Base


def _utcnow() -> datetime:
    from notification_sync.domain.common.types import utcnow
    return utcnow()


class NotificationModel(Base):
    """Per-user notification document."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String, nullable=False)  # new_follower, delivery, recommendations, referrals, rewards, account
    status = Column(String, nullable=False, default="new")  # new | downloaded | read
    priority = Column(String, nullable=False, default="medium")
    category = Column(String, nullable=False, default="")
    is_read = Column(Boolean, nullable=False, default=False)
    action_text = Column(String, nullable=True)
    action_url = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    notification_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
