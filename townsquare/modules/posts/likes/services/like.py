from typing import Optional
import logging
import uuid

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from townsquare.core.exceptions import ConflictError, InternalError
from townsquare.modules.notifications.services.notification_events import create_like_notification
from townsquare.modules.posts.likes.models.like import Like
from townsquare.modules.posts.likes.schemas.like import LikeToggle
from townsquare.modules.posts.services.counters import (
    decrement_like_count, get_like_count, increment_like_count
)
from townsquare.modules.posts.services.post import get_active_post

logger = logging.getLogger(__name__)

def get_like(db: Session, user_id: str, post_id: str) -> Optional[Like]:
    """Get like by user ID and post ID"""
    return db.query(Like).filter(Like.user_id == user_id, Like.post_id == post_id).first()

def toggle_like(db: Session, post_id: str, user_id: str) -> LikeToggle:
    """
    Like the post if the user hasn't, otherwise remove the like.

    The Like row and the counter change commit together. A concurrent duplicate
    like by the same user hits the unique constraint and is reported as a
    conflict with nothing applied.
    """
    post = get_active_post(db, post_id)
    post_author_id = post.author_id

    try:
        if get_like(db, user_id, post_id):
            result = db.execute(delete(Like).where(Like.user_id == user_id, Like.post_id == post_id))
            # A racing unlike may already have removed the row
            if result.rowcount:
                decrement_like_count(db, post_id)
            liked = False
        else:
            db.add(Like(id=str(uuid.uuid4()), user_id=user_id, post_id=post_id))
            db.flush()
            increment_like_count(db, post_id)
            liked = True
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Duplicate like by user {user_id} on post {post_id}")
        raise ConflictError("Post already liked")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error toggling like by user {user_id} on post {post_id}: {e}")
        raise InternalError(context={"post_id": post_id, "user_id": user_id}) from e

    like_count = get_like_count(db, post_id)
    logger.info(f"User {user_id} {'liked' if liked else 'unliked'} post {post_id}, like_count={like_count}")

    if liked:
        create_like_notification(db, post_id, user_id, post_author_id)

    return LikeToggle(liked=liked, like_count=like_count)
