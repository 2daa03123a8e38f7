from typing import Any

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from townsquare.db.session import get_db
from townsquare.deps import get_current_user
from townsquare.modules.user_management.models.user import User
from townsquare.modules.posts.comments.schemas.comment import (
    CommentCreate, CommentDeleted, CommentEnvelope, CommentList
)
from townsquare.modules.posts.comments.services.comment import (
    create_comment, delete_comment, get_comments_by_post
)

router = APIRouter()
logger = logging.getLogger("townsquare")

@router.get("", response_model=CommentList)
def read_comments(
    *,
    db: Session = Depends(get_db),
    post_id: str,
) -> Any:
    """Get the active comments of a post, oldest first"""
    return CommentList(comments=get_comments_by_post(db, post_id))

@router.post("", response_model=CommentEnvelope, status_code=status.HTTP_201_CREATED)
def create_new_comment(
    *,
    db: Session = Depends(get_db),
    post_id: str,
    comment_in: CommentCreate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Create a comment on a post"""
    return CommentEnvelope(comment=create_comment(db, post_id, comment_in, current_user))

@router.delete("/{comment_id}", response_model=CommentDeleted)
def delete_comment_by_id(
    *,
    db: Session = Depends(get_db),
    post_id: str,
    comment_id: str,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Soft-delete the caller's own comment"""
    comment_count = delete_comment(db, post_id, comment_id, current_user)
    return CommentDeleted(message="Comment deleted successfully", comment_count=comment_count)
