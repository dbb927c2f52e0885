import asyncio
import json
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from app.core_settings import get_settings
from app.domain.errors import ServiceUnavailableError
from app.domain.models import utcnow
from app.infrastructure.notifications import Notification, NotificationBus
from app.application.schemas import NotificationRead
from shared.core import get_logger
from .dependencies import Actor, get_actor, get_notification_bus

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = get_logger(__name__)

def format_sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"

@router.get("/recent", response_model=list[NotificationRead])
def recent_notifications(
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return [n.to_dict() for n in bus.recent(actor.establishment_id, limit)]

async def event_stream(request: Request, bus: NotificationBus, establishment_id: str, heartbeat: float):
    """Server-sent events for one establishment until the client disconnects or the bus closes."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Publishers run on request threads, hand over to the loop
    def on_notification(notification: Notification) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, notification)

    try:
        unsubscribe = bus.subscribe(establishment_id, on_notification)
    except RuntimeError:
        logger.warning(
            "Notification bus closed, stream not opened",
            extra={'extra_fields': {'establishment_id': establishment_id}}
        )
        return
    logger.info(
        "Notification stream opened",
        extra={'extra_fields': {'establishment_id': establishment_id}}
    )
    try:
        yield format_sse("connected", {"establishment_id": establishment_id})
        while not bus.closed:
            if await request.is_disconnected():
                break
            try:
                notification = await asyncio.wait_for(queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield format_sse("heartbeat", {"timestamp": utcnow().isoformat() + "Z"})
                continue
            yield format_sse(notification.type.value, notification.to_dict())
    finally:
        unsubscribe()
        logger.info(
            "Notification stream closed",
            extra={'extra_fields': {'establishment_id': establishment_id}}
        )

@router.get("/stream")
async def stream_notifications(
    request: Request,
    actor: Actor = Depends(get_actor),
    bus: NotificationBus = Depends(get_notification_bus),
):
    if bus.closed:
        raise ServiceUnavailableError("Notifications are unavailable, service is shutting down")
    return StreamingResponse(
        event_stream(request, bus, actor.establishment_id, get_settings().SSE_HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
