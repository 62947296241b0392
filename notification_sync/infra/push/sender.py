"""Push notification sender via FCM (Firebase Cloud Messaging)."""
import asyncio
import logging
import os
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging
from sqlalchemy.ext.asyncio import AsyncSession

from notification_sync.infra.db.repositories.push_token_repo import PushTokenRepository

logger = logging.getLogger(__name__)


class PushSender:
    """Sends one FCM message per active device token of a user."""

    def __init__(self, enabled: bool = False, credentials_path: str = ""):
        self._enabled = enabled
        self._credentials_path = credentials_path
        self._app: Optional[firebase_admin.App] = None

    def _get_app(self) -> Optional[firebase_admin.App]:
        """Lazy-init the Firebase app. Returns None if push is disabled or has no credentials."""
        if self._app is not None:
            return self._app
        if not self._enabled:
            return None
        cred_path = self._credentials_path or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "")
        if not cred_path:
            logger.debug("Push disabled: no GOOGLE_APPLICATION_CREDENTIALS")
            return None
        try:
            self._app = firebase_admin.get_app()
        except ValueError:
            try:
                self._app = firebase_admin.initialize_app(credentials.Certificate(cred_path))
            except (ValueError, OSError) as e:
                logger.warning("Firebase init failed (push disabled): %s", e)
                return None
        return self._app

    async def send_to_user(
        self,
        session: AsyncSession,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any],
    ) -> int:
        """Send to every active token of the user. data must include notificationId; values are
        stringified for FCM. Tokens FCM reports as unregistered are deactivated. Returns the
        number of messages accepted."""
        app = self._get_app()
        if app is None:
            return 0
        repo = PushTokenRepository(session)
        tokens_rows = await repo.list_active_tokens(user_id)
        if not tokens_rows:
            logger.debug("No push tokens for user %s", user_id)
            return 0
        # FCM data payload: all values must be strings
        data_str = {k: str(v) for k, v in data.items()}
        sent = 0
        for (push_token, platform) in tokens_rows:
            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data=data_str,
                token=push_token,
            )
            try:
                await asyncio.to_thread(messaging.send, message, app=app)
                sent += 1
                logger.debug("Push sent to user %s token %s...", user_id, push_token[:20])
            except messaging.UnregisteredError:
                logger.info("Push token %s... unregistered; deactivating", push_token[:20])
                await repo.deactivate_token(push_token)
            except exceptions.FirebaseError as e:
                logger.warning("Push send failed for token %s...: %s", push_token[:20], e)
        return sent
