"""Notification API routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from notification_sync.api.deps import get_container, get_service
from notification_sync.container import Container
from notification_sync.domain.common.errors import RemoteUnavailableError
from notification_sync.domain.notifications.models import (
    Notification,
    NotificationAction,
    NotificationDraft,
    NotificationFilter,
    NotificationPriority,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
)
from notification_sync.services.delivery import deliver_notification
from notification_sync.services.notification_service import (
    NotificationPage,
    NotificationService,
    UpdateResult,
)

router = APIRouter()


class SessionRequest(BaseModel):
    user_id: str


class SessionResponse(BaseModel):
    user_id: Optional[str]
    state: str
    unread_count: int


class ActionRequest(BaseModel):
    action: NotificationAction


class BatchReadRequest(BaseModel):
    ids: List[str]


class SettingsUpdateRequest(BaseModel):
    label: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None


class DeliverRequest(BaseModel):
    user_id: str
    notification: NotificationDraft


class AlertResponse(BaseModel):
    id: str
    message: str
    kind: str
    visible: bool


def _session_response(container: Container) -> SessionResponse:
    manager = container.manager
    return SessionResponse(
        user_id=manager.user_id,
        state=manager.state.value,
        unread_count=manager.unread_count,
    )


def _require_session(service: NotificationService) -> None:
    if not service.manager.is_ready:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No active notification session")


async def _settled(service: NotificationService) -> None:
    """Let the live list catch up with a mutation before responding."""
    await service.manager.wait_until_idle()


@router.post("/session", response_model=SessionResponse)
async def start_session(request: SessionRequest, container: Container = Depends(get_container)):
    """Initialize the process-wide notification session for a user (switches user if needed)."""
    try:
        await container.service.initialize(request.user_id)
    except RemoteUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if container.alert_binding is not None:
        container.alert_binding()
    container.alert_binding = container.alerts.bind(container.manager)
    return _session_response(container)


@router.get("/session", response_model=SessionResponse)
async def get_session(container: Container = Depends(get_container)):
    return _session_response(container)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(container: Container = Depends(get_container)):
    """Release the live subscription and push listeners. Idempotent."""
    await container.service.cleanup()
    container.alerts.clear()


@router.get("", response_model=NotificationPage)
async def list_notifications(
    types: Optional[List[NotificationType]] = Query(None),
    statuses: Optional[List[NotificationStatus]] = Query(None),
    priorities: Optional[List[NotificationPriority]] = Query(None),
    is_read: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
    service: NotificationService = Depends(get_service),
):
    """One page of the live list, newest first, after filters and search."""
    _require_session(service)
    filters = NotificationFilter(
        types=types,
        statuses=statuses,
        priorities=priorities,
        is_read=is_read,
        date_from=date_from,
        date_to=date_to,
        search_query=search,
    )
    return await service.get_notifications(filters, page=page, page_size=page_size)


@router.get("/unread-count")
async def unread_count(service: NotificationService = Depends(get_service)):
    """Fresh unread count from the store."""
    _require_session(service)
    return {"count": await service.get_unread_count()}


@router.post("/read", response_model=UpdateResult)
async def mark_many_read(request: BatchReadRequest, service: NotificationService = Depends(get_service)):
    result = await service.mark_multiple_as_read(request.ids)
    await _settled(service)
    return result


@router.post("/test")
async def create_test_notification(service: NotificationService = Depends(get_service)):
    _require_session(service)
    notification_id = await service.create_test_notification()
    if notification_id is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not create notification")
    await _settled(service)
    return {"id": notification_id}


@router.post("/push-token/refresh")
async def refresh_push_token(service: NotificationService = Depends(get_service)):
    _require_session(service)
    return {"token": await service.refresh_push_token()}


@router.get("/settings", response_model=List[NotificationSettings])
async def get_settings(service: NotificationService = Depends(get_service)):
    """Per-category settings, defaults when none are stored."""
    return await service.get_settings()


@router.patch("/settings/{setting_id}", response_model=UpdateResult)
async def update_settings(
    setting_id: str,
    request: SettingsUpdateRequest,
    service: NotificationService = Depends(get_service),
):
    return await service.update_settings(setting_id, request.model_dump(exclude_none=True))


@router.get("/alerts", response_model=List[AlertResponse])
async def list_alerts(container: Container = Depends(get_container)):
    """Visible in-app alerts raised by foreground notifications."""
    return [
        AlertResponse(id=a.id, message=a.config.message, kind=a.config.kind.value, visible=a.visible)
        for a in container.alerts.visible
    ]


@router.delete("/alerts/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_alert(alert_id: str, container: Container = Depends(get_container)):
    container.alerts.hide(alert_id)


@router.post("/deliver", response_model=Notification)
async def deliver(request: DeliverRequest, container: Container = Depends(get_container)):
    """Create a notification for any user and push it to their devices."""
    try:
        notification = await deliver_notification(
            container.repository,
            container.session_factory,
            request.user_id,
            request.notification,
            sender=container.sender,
        )
    except RemoteUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    await _settled(container.service)
    return notification


@router.get("/{notification_id}", response_model=Notification)
async def get_notification(notification_id: str, service: NotificationService = Depends(get_service)):
    _require_session(service)
    notification = await service.get_notification(notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.post("/{notification_id}/actions", response_model=UpdateResult)
async def update_notification(
    notification_id: str,
    request: ActionRequest,
    service: NotificationService = Depends(get_service),
):
    """Apply mark_read, mark_unread or delete. Failures come back as success=false."""
    result = await service.update_notification(notification_id, request.action)
    await _settled(service)
    return result
