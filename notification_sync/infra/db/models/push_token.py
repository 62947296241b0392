"""Push token database model (one row per user device)."""
from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint

from notification_sync.infra.db.base import Base
from notification_sync.infra.db.models.notification import _utcnow


class PushTokenModel(Base):
    """Current push registration for a (user, device) pair."""

    __tablename__ = "push_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_push_tokens_user_device"),
    )

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    device_id = Column(String, nullable=False)
    token = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False)  # ios | android | web
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
