"""Notifications API."""
from fastapi import APIRouter

from notification_sync.api.notifications import routes_notifications, routes_ws

router = APIRouter()

router.include_router(routes_notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(routes_ws.router, prefix="/notifications", tags=["notifications"])
