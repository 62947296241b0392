"""Transient in-app alerts (top banners) shown over the app."""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from notification_sync.domain.notifications.models import Notification
from notification_sync.domain.notifications.repositories import Unsubscribe

logger = logging.getLogger(__name__)


class AlertKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class AlertConfig:
    message: str
    kind: AlertKind = AlertKind.INFO
    icon: Optional[str] = None
    duration_ms: int = 4000  # 0 keeps the alert until hidden
    dismissible: bool = True
    show_close_button: bool = False
    close_button_text: str = "Close"


@dataclass(frozen=True)
class Alert:
    id: str
    config: AlertConfig
    visible: bool = True


@dataclass
class InAppAlertCenter:
    """Ordered queue of alerts. Rendering and auto-dismiss timing belong to the presentation layer."""

    alerts: list[Alert] = field(default_factory=list)
    _counter: int = 0

    def show(self, config: AlertConfig) -> str:
        self._counter += 1
        alert_id = f"notification-{self._counter}"
        self.alerts.append(Alert(id=alert_id, config=config))
        return alert_id

    def _show_kind(self, kind: AlertKind, message: str, **options) -> str:
        return self.show(AlertConfig(message=message, kind=kind, **options))

    def show_success(self, message: str, **options) -> str:
        return self._show_kind(AlertKind.SUCCESS, message, **options)

    def show_error(self, message: str, **options) -> str:
        return self._show_kind(AlertKind.ERROR, message, **options)

    def show_warning(self, message: str, **options) -> str:
        return self._show_kind(AlertKind.WARNING, message, **options)

    def show_info(self, message: str, **options) -> str:
        return self._show_kind(AlertKind.INFO, message, **options)

    def hide(self, alert_id: str) -> None:
        """Mark invisible but keep it queued (exit animation still pending)."""
        self.alerts = [replace(a, visible=False) if a.id == alert_id else a for a in self.alerts]

    def remove(self, alert_id: str) -> None:
        self.alerts = [a for a in self.alerts if a.id != alert_id]

    def clear(self) -> None:
        self.alerts = []

    @property
    def visible(self) -> list[Alert]:
        return [a for a in self.alerts if a.visible]

    def bind(self, manager, format_message: Optional[Callable[[Notification], str]] = None) -> Unsubscribe:
        """Show an info alert for every foreground notification the manager receives."""
        fmt = format_message or (lambda n: n.title)

        def on_received(notification: Notification) -> None:
            logger.debug("Showing in-app alert for %s", notification.id)
            self.show_info(fmt(notification))

        return manager.on_notification_received(on_received)
