"""Notification settings repository."""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notification_sync.domain.common.types import utcnow
from notification_sync.domain.notifications.models import NotificationSettings
from notification_sync.infra.db.models.settings import NotificationSettingsModel


def _to_domain(model: NotificationSettingsModel) -> NotificationSettings:
    return NotificationSettings(
        id=model.id,
        user_id=model.user_id,
        type=model.type,
        label=model.label,
        description=model.description or "",
        enabled=model.enabled,
        push_enabled=model.push_enabled,
        email_enabled=model.email_enabled,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SettingsRepository:
    """Settings repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_by_user(self, user_id: str) -> List[NotificationSettings]:
        result = await self.session.execute(
            select(NotificationSettingsModel)
            .where(NotificationSettingsModel.user_id == user_id)
            .order_by(NotificationSettingsModel.id)
        )
        return [_to_domain(m) for m in result.scalars().all()]

    async def get(self, user_id: str, setting_id: str) -> Optional[NotificationSettings]:
        model = await self.session.get(NotificationSettingsModel, (user_id, setting_id))
        return _to_domain(model) if model else None

    async def upsert(self, setting: NotificationSettings) -> NotificationSettings:
        """Insert or overwrite (user_id, id)."""
        model = await self.session.get(NotificationSettingsModel, (setting.user_id, setting.id))
        now = utcnow()
        if model is None:
            model = NotificationSettingsModel(
                user_id=setting.user_id,
                id=setting.id,
                created_at=setting.created_at,
            )
            self.session.add(model)
        model.type = setting.type.value
        model.label = setting.label
        model.description = setting.description
        model.enabled = setting.enabled
        model.push_enabled = setting.push_enabled
        model.email_enabled = setting.email_enabled
        model.updated_at = now
        await self.session.commit()
        return _to_domain(model)
