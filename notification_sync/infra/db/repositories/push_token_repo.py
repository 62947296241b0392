"""Push token repository: one row per (user, device)."""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notification_sync.domain.common.types import generate_id, utcnow
from notification_sync.domain.notifications.models import PushToken
from notification_sync.infra.db.models.push_token import PushTokenModel


def _to_domain(model: PushTokenModel) -> PushToken:
    return PushToken(
        token=model.token,
        platform=model.platform,
        device_id=model.device_id,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class PushTokenRepository:
    """Push token repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, user_id: str, token: PushToken) -> PushToken:
        """Insert or overwrite the record for (user_id, device_id). The new token is active."""
        existing = await self.session.execute(
            select(PushTokenModel).where(
                PushTokenModel.user_id == user_id,
                PushTokenModel.device_id == token.device_id,
            )
        )
        row = existing.scalar_one_or_none()
        now = utcnow()
        if row:
            row.token = token.token
            row.platform = token.platform
            row.is_active = True
            row.updated_at = now
            await self.session.commit()
            return _to_domain(row)
        model = PushTokenModel(
            id=generate_id(),
            user_id=user_id,
            device_id=token.device_id,
            token=token.token,
            platform=token.platform,
            is_active=True,
            created_at=token.created_at,
            updated_at=now,
        )
        self.session.add(model)
        await self.session.commit()
        return _to_domain(model)

    async def get(self, user_id: str, device_id: str) -> Optional[PushToken]:
        result = await self.session.execute(
            select(PushTokenModel).where(
                PushTokenModel.user_id == user_id,
                PushTokenModel.device_id == device_id,
            )
        )
        row = result.scalar_one_or_none()
        return _to_domain(row) if row else None

    async def deactivate(self, user_id: str, device_id: str) -> bool:
        """Mark the device's token inactive (logout). Returns True if a row changed."""
        result = await self.session.execute(
            update(PushTokenModel)
            .where(
                PushTokenModel.user_id == user_id,
                PushTokenModel.device_id == device_id,
                PushTokenModel.is_active.is_(True),
            )
            .values(is_active=False, updated_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount > 0

    async def deactivate_token(self, token: str) -> int:
        """Deactivate every row carrying a token the push service rejected."""
        result = await self.session.execute(
            update(PushTokenModel)
            .where(PushTokenModel.token == token, PushTokenModel.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount or 0

    async def list_active_tokens(self, user_id: str) -> List[tuple]:
        """List (token, platform) for a user's active devices. Used by push sender."""
        result = await self.session.execute(
            select(PushTokenModel.token, PushTokenModel.platform).where(
                PushTokenModel.user_id == user_id,
                PushTokenModel.is_active.is_(True),
            )
        )
        return list(result.all())
