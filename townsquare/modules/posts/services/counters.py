"""
Denormalized post counters.

Every change is a single ``UPDATE posts SET n = n +/- 1`` issued inside the
caller's open transaction, next to the INSERT/DELETE of the Like or Comment
row it accounts for. Nothing here commits; callers commit or roll back both
halves together. Decrements floor at zero.
"""
import logging
from typing import Iterable

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from townsquare.modules.posts.models.post import Post
from townsquare.modules.posts.comments.models.comment import Comment
from townsquare.modules.posts.likes.models.like import Like

logger = logging.getLogger(__name__)

def _increment(db: Session, post_id: str, column) -> None:
    db.execute(
        update(Post)
        .where(Post.id == post_id)
        .values({column: column + 1})
        .execution_options(synchronize_session=False)
    )

def _decrement(db: Session, post_id: str, column) -> None:
    db.execute(
        update(Post)
        .where(Post.id == post_id)
        .values({column: case((column > 0, column - 1), else_=0)})
        .execution_options(synchronize_session=False)
    )

def increment_like_count(db: Session, post_id: str) -> None:
    _increment(db, post_id, Post.like_count)

def decrement_like_count(db: Session, post_id: str) -> None:
    _decrement(db, post_id, Post.like_count)

def increment_comment_count(db: Session, post_id: str) -> None:
    _increment(db, post_id, Post.comment_count)

def decrement_comment_count(db: Session, post_id: str) -> None:
    _decrement(db, post_id, Post.comment_count)

def get_like_count(db: Session, post_id: str) -> int:
    return db.execute(select(Post.like_count).where(Post.id == post_id)).scalar() or 0

def get_comment_count(db: Session, post_id: str) -> int:
    return db.execute(select(Post.comment_count).where(Post.id == post_id)).scalar() or 0

def reconcile_post_counters(db: Session, post_ids: Iterable[str]) -> int:
    """Recompute both counters from the join tables. Does not commit."""
    post_ids = list(set(post_ids))
    if not post_ids:
        return 0

    like_counts = (
        select(func.count(Like.id))
        .where(Like.post_id == Post.id)
        .scalar_subquery()
    )
    comment_counts = (
        select(func.count(Comment.id))
        .where(Comment.post_id == Post.id, Comment.is_active == True)
        .scalar_subquery()
    )
    result = db.execute(
        update(Post)
        .where(Post.id.in_(post_ids))
        .values(like_count=like_counts, comment_count=comment_counts)
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Reconciled counters for {result.rowcount} posts")
    return result.rowcount
