from typing import List, Optional
import logging
import uuid

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from townsquare.core.config import settings
from townsquare.core.exceptions import ForbiddenError, InternalError, NotFoundError
from townsquare.modules.notifications.services.notification_events import create_comment_notification
from townsquare.modules.posts.comments.models.comment import Comment
from townsquare.modules.posts.comments.schemas.comment import Comment as CommentSchema, CommentCreate
from townsquare.modules.posts.services.counters import (
    decrement_comment_count, get_comment_count, increment_comment_count
)
from townsquare.modules.posts.services.post import clean_content, get_active_post
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.services.user import get_users_by_ids, to_summary

logger = logging.getLogger(__name__)

def get_comment(db: Session, comment_id: str) -> Optional[Comment]:
    """Get comment by ID"""
    return db.query(Comment).filter(Comment.id == comment_id).first()

def _to_schema(comment: Comment, author: Optional[User]) -> CommentSchema:
    return CommentSchema(
        id=comment.id,
        content=comment.content,
        post_id=comment.post_id,
        author_id=comment.author_id,
        created_at=comment.created_at,
        author=to_summary(author),
    )

def get_comments_by_post(db: Session, post_id: str) -> List[CommentSchema]:
    """Active comments on an active post, oldest first"""
    get_active_post(db, post_id)
    comments = (
        db.query(Comment)
        .filter(Comment.post_id == post_id, Comment.is_active == True)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )
    authors = get_users_by_ids(db, {c.author_id for c in comments})
    return [_to_schema(c, authors.get(c.author_id)) for c in comments]

def create_comment(db: Session, post_id: str, comment_in: CommentCreate, author: User) -> CommentSchema:
    """Create a comment and bump the post's comment count in one transaction"""
    content = clean_content(comment_in.content, settings.COMMENT_MAX_LENGTH, label="Comment")
    post = get_active_post(db, post_id)
    post_author_id = post.author_id

    comment = Comment(
        id=str(uuid.uuid4()),
        content=content,
        author_id=author.id,
        post_id=post_id,
    )
    try:
        db.add(comment)
        db.flush()
        increment_comment_count(db, post_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating comment on post {post_id}: {e}")
        raise InternalError(context={"post_id": post_id, "author_id": author.id}) from e
    db.refresh(comment)
    logger.info(f"User {author.id} commented {comment.id} on post {post_id}")

    # Best-effort, never fails comment creation
    create_comment_notification(db, post_id, author.id, post_author_id)

    return _to_schema(comment, author)

def delete_comment(db: Session, post_id: str, comment_id: str, user: User) -> int:
    """Soft-delete the user's own comment, return the post's new comment count"""
    get_active_post(db, post_id)
    comment = get_comment(db, comment_id)
    if not comment or comment.post_id != post_id or not comment.is_active:
        raise NotFoundError("Comment", context={"comment_id": comment_id, "post_id": post_id})
    if comment.author_id != user.id:
        raise ForbiddenError("Not enough permissions")

    try:
        # Only the request that actually flips the flag decrements
        result = db.execute(
            update(Comment)
            .where(Comment.id == comment_id, Comment.is_active == True)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            decrement_comment_count(db, post_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting comment {comment_id}: {e}")
        raise InternalError(context={"comment_id": comment_id}) from e

    logger.info(f"Comment {comment_id} soft-deleted by {user.id}")
    return get_comment_count(db, post_id)
