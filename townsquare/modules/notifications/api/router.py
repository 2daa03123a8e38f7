from typing import Any, AsyncIterator
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from townsquare.core.config import settings
from townsquare.core.schemas import Message
from townsquare.db.session import SessionLocal, get_db
from townsquare.deps import get_current_user_id, get_stream_user_id
from townsquare.modules.notifications.realtime.change_feed import change_feed
from townsquare.modules.notifications.realtime.subscriber import NotificationSubscriber
from townsquare.modules.notifications.schemas.notification import MarkAllRead, NotificationList, UnreadCount
from townsquare.modules.notifications.services.notification import (
    count_unread,
    get_user_notifications,
    mark_all_read,
    mark_read,
)

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("", response_model=NotificationList)
def read_notifications(
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Get the user's most recent notifications"""
    return NotificationList(notifications=get_user_notifications(db, current_user_id))

@router.get("/unread-count", response_model=UnreadCount)
def read_unread_count(
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    return UnreadCount(count=count_unread(db, current_user_id))

@router.patch("/mark-all-read", response_model=MarkAllRead)
def mark_all_notifications_as_read(
    *,
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Mark all of the user's notifications as read"""
    count = mark_all_read(db, current_user_id)
    return MarkAllRead(message=f"Marked {count} notifications as read", count=count)

@router.patch("/{notification_id}/read", response_model=Message)
def mark_notification_as_read(
    *,
    db: Session = Depends(get_db),
    notification_id: str,
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Mark a specific notification as read"""
    mark_read(db, notification_id, current_user_id)
    return Message(message="Notification marked as read")

def _count_unread_now(recipient_id: str) -> int:
    db = SessionLocal()
    try:
        return count_unread(db, recipient_id)
    finally:
        db.close()

async def _load_unread_count(recipient_id: str) -> int:
    return await run_in_threadpool(_count_unread_now, recipient_id)

@router.get("/stream")
async def stream_notifications(
    request: Request,
    current_user_id: str = Depends(get_stream_user_id),
) -> StreamingResponse:
    """
    Live notification feed as Server-Sent Events.

    Emits a ``snapshot`` with the unread count on connect, then a
    ``notification`` per new notification and ``unread-count`` whenever one
    is read elsewhere.
    """
    subscriber = NotificationSubscriber(
        current_user_id,
        change_feed,
        _load_unread_count,
        resync_interval=settings.SUBSCRIBER_RESYNC_SECONDS,
        queue_size=settings.SUBSCRIBER_QUEUE_SIZE,
    )

    async def event_source() -> AsyncIterator[str]:
        async with subscriber:
            async for message in subscriber.stream():
                if await request.is_disconnected():
                    logger.debug(f"Client for user {current_user_id} disconnected")
                    break
                yield message.to_sse()

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
