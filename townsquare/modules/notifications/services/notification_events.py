"""
Notification events service.
This module decides who gets notified for each domain event and writes the
Notification rows. It runs after the primary action has committed, in its own
transaction, and never raises: a failed write is logged and reported as zero
rows so the like/comment/follow/post that triggered it still succeeds.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging
import uuid

from sqlalchemy import insert
from sqlalchemy.orm import Session

from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.notifications.models.notification import Notification, NotificationType
from townsquare.modules.notifications.realtime.capture import notification_row, record_change
from townsquare.modules.notifications.realtime.change_feed import ChangeEvent, INSERT
from townsquare.modules.posts.models.post import Post

# Set up logger
logger = logging.getLogger(__name__)

NOTIFICATION_MESSAGES: Dict[NotificationType, str] = {
    NotificationType.FOLLOW: "started following you",
    NotificationType.LIKE: "liked your post",
    NotificationType.COMMENT: "commented on your post",
    NotificationType.POST: "shared a new post",
}

def message_for(notification_type: NotificationType) -> str:
    return NOTIFICATION_MESSAGES[notification_type]

@dataclass
class NotificationEvent:
    """
    A domain event that may produce notifications.

    subject_id is the followed user for FOLLOW and the post for LIKE, COMMENT
    and POST. recipient_ids, when given, skips the recipient lookup.
    """
    type: NotificationType
    actor_id: str
    subject_id: str
    recipient_ids: Optional[List[str]] = field(default=None)

def _resolve_recipients(db: Session, event: NotificationEvent) -> List[str]:
    if event.recipient_ids is not None:
        return list(event.recipient_ids)

    if event.type == NotificationType.FOLLOW:
        return [event.subject_id]

    if event.type in (NotificationType.LIKE, NotificationType.COMMENT):
        author_id = db.query(Post.author_id).filter(Post.id == event.subject_id).scalar()
        if author_id is None:
            logger.warning(f"Post {event.subject_id} not found when creating {event.type.value} notification")
            return []
        return [author_id]

    if event.type == NotificationType.POST:
        rows = db.query(Follow.follower_id).filter(Follow.following_id == event.actor_id).all()
        return [row[0] for row in rows]

    return []

def _build_rows(event: NotificationEvent, recipient_ids: List[str]) -> List[dict]:
    post_id = None if event.type == NotificationType.FOLLOW else event.subject_id
    created_at = datetime.now(timezone.utc).replace(tzinfo=None)
    rows = []
    seen = set()
    for recipient_id in recipient_ids:
        # Never notify someone about their own action
        if recipient_id == event.actor_id or recipient_id in seen:
            continue
        seen.add(recipient_id)
        rows.append({
            "id": str(uuid.uuid4()),
            "recipient_id": recipient_id,
            "sender_id": event.actor_id,
            "type": event.type,
            "message": message_for(event.type),
            "post_id": post_id,
            "is_read": False,
            "created_at": created_at,
        })
    return rows

def dispatch_notification_event(db: Session, event: NotificationEvent) -> int:
    """
    Create the notifications for one event.

    Args:
        db: Database session with no pending primary-action changes
        event: The triggering event

    Returns:
        Number of notifications created (0 when suppressed or on failure)
    """
    try:
        rows = _build_rows(event, _resolve_recipients(db, event))
        if not rows:
            logger.debug(f"No {event.type.value} notification needed for actor {event.actor_id} on {event.subject_id}")
            return 0

        # One statement regardless of how many followers are fanned out to
        db.execute(insert(Notification), rows)
        for row in rows:
            record_change(db, ChangeEvent(INSERT, Notification.__tablename__, notification_row(row)))
        db.commit()

        logger.info(f"Created {len(rows)} {event.type.value} notification(s) from user {event.actor_id} on {event.subject_id}")
        return len(rows)
    except Exception as e:
        db.rollback()
        logger.error(
            f"Error creating {event.type.value} notification "
            f"(actor={event.actor_id}, subject={event.subject_id}): {e}"
        )
        return 0

def create_follow_notification(db: Session, follower_id: str, following_id: str) -> int:
    return dispatch_notification_event(db, NotificationEvent(NotificationType.FOLLOW, follower_id, following_id))

def create_like_notification(db: Session, post_id: str, liker_id: str, post_author_id: Optional[str] = None) -> int:
    recipients = [post_author_id] if post_author_id else None
    return dispatch_notification_event(db, NotificationEvent(NotificationType.LIKE, liker_id, post_id, recipients))

def create_comment_notification(db: Session, post_id: str, commenter_id: str, post_author_id: Optional[str] = None) -> int:
    recipients = [post_author_id] if post_author_id else None
    return dispatch_notification_event(db, NotificationEvent(NotificationType.COMMENT, commenter_id, post_id, recipients))

def create_post_notifications(db: Session, author_id: str, post_id: str) -> int:
    """Fan a new post out to every follower of its author"""
    return dispatch_notification_event(db, NotificationEvent(NotificationType.POST, author_id, post_id))
