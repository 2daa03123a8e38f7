from typing import List, Optional
import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from townsquare.core.config import settings
from townsquare.core.exceptions import NotFoundError
from townsquare.modules.notifications.models.notification import Notification
from townsquare.modules.notifications.realtime.capture import record_change
from townsquare.modules.notifications.realtime.change_feed import ChangeEvent, UPDATE
from townsquare.modules.notifications.schemas.notification import Notification as NotificationSchema
from townsquare.modules.posts.models.post import Post
from townsquare.modules.posts.schemas.post import PostSummary
from townsquare.modules.user_management.services.user import get_users_by_ids, to_summary

logger = logging.getLogger(__name__)

def get_user_notifications(db: Session, recipient_id: str, limit: Optional[int] = None) -> List[NotificationSchema]:
    """Most recent notifications for a user with sender and post summaries"""
    limit = limit or settings.NOTIFICATIONS_LIMIT
    notifications = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )

    senders = get_users_by_ids(db, {n.sender_id for n in notifications})
    post_ids = {n.post_id for n in notifications if n.post_id}
    posts = {p.id: p for p in db.query(Post).filter(Post.id.in_(post_ids)).all()} if post_ids else {}

    result = []
    for notification in notifications:
        post = posts.get(notification.post_id)
        result.append(NotificationSchema(
            id=notification.id,
            type=notification.type,
            message=notification.message,
            recipient_id=notification.recipient_id,
            sender_id=notification.sender_id,
            post_id=notification.post_id,
            is_read=notification.is_read,
            created_at=notification.created_at,
            sender=to_summary(senders.get(notification.sender_id)),
            post=PostSummary.model_validate(post) if post else None,
        ))
    return result

def count_unread(db: Session, recipient_id: str) -> int:
    """Authoritative unread count, always recomputed from the table"""
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.recipient_id == recipient_id, Notification.is_read == False)
        .scalar()
        or 0
    )

def mark_read(db: Session, notification_id: str, recipient_id: str) -> Notification:
    """Mark one of the recipient's notifications as read"""
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.recipient_id == recipient_id)
        .first()
    )
    # Someone else's notification is reported exactly like a missing one
    if not notification:
        raise NotFoundError("Notification", context={"notification_id": notification_id, "recipient_id": recipient_id})

    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
        logger.debug(f"Notification {notification_id} marked read by {recipient_id}")

    return notification

def mark_all_read(db: Session, recipient_id: str) -> int:
    """Mark all of a recipient's unread notifications as read, return how many flipped"""
    result = db.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read == False)
        .values(is_read=True)
        .returning(Notification.id)
        .execution_options(synchronize_session=False)
    )
    flipped = [row[0] for row in result.all()]

    for notification_id in flipped:
        new_row = {"id": notification_id, "recipient_id": recipient_id, "is_read": True}
        record_change(db, ChangeEvent(UPDATE, Notification.__tablename__, new_row, dict(new_row, is_read=False)))

    db.commit()
    logger.info(f"Marked {len(flipped)} notifications as read for user {recipient_id}")
    return len(flipped)
