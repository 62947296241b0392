"""WebSocket stream of notification events."""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from notification_sync.domain.notifications.events import SyncEvent

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def notification_events(websocket: WebSocket):
    """Stream every event of the active session as {"type", "payload"} JSON.

    Clients may send {"type": "app_state", "state": "active"} when they return
    to the foreground; the live list is re-queried.
    """
    container = websocket.app.state.container
    manager = container.manager
    await websocket.accept()
    if not manager.is_ready:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="No active notification session")
        return

    queue: asyncio.Queue[SyncEvent] = asyncio.Queue()
    unsubscribe = manager.subscribe(None, queue.put_nowait)
    await websocket.send_json({
        "type": "session",
        "payload": {"user_id": manager.user_id, "unread_count": manager.unread_count},
    })

    async def pump() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_payload())

    sender = asyncio.create_task(pump())
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "app_state":
                manager.handle_app_state_change(str(message.get("state", "")))
    except WebSocketDisconnect:
        logger.debug("Notification event stream closed")
    except ValueError as e:
        logger.warning("Closing notification event stream on malformed frame: %s", e)
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA, reason="Malformed JSON")
    finally:
        unsubscribe()
        sender.cancel()
