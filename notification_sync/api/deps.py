"""API dependencies."""
from fastapi import Request

from notification_sync.container import Container
from notification_sync.services.notification_service import NotificationService


def get_container(request: Request) -> Container:
    """Process-scoped services built in the app lifespan."""
    return request.app.state.container


def get_service(request: Request) -> NotificationService:
    return get_container(request).service
