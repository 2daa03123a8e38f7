from typing import Any, Optional
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from townsquare.core.schemas import Message
from townsquare.db.session import get_db
from townsquare.deps import get_current_user, get_optional_user_id
from townsquare.modules.posts.schemas.post import PostCreate, PostEnvelope, PostListResponse
from townsquare.modules.posts.services.post import (
    DEFAULT_LIMIT, create_post, get_posts, soft_delete_post
)
from townsquare.modules.user_management.models.user import User

# Get the logger
logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("", response_model=PostListResponse)
def read_posts(
    db: Session = Depends(get_db),
    page: int = Query(0),
    limit: int = Query(DEFAULT_LIMIT),
    current_user_id: Optional[str] = Depends(get_optional_user_id),
) -> Any:
    """
    Retrieve active posts, newest first. Anonymous callers get likedByMe=false.
    """
    return get_posts(db, viewer_id=current_user_id, page=page, limit=limit)

@router.post("", response_model=PostEnvelope, status_code=status.HTTP_201_CREATED)
def create_new_post(
    *,
    db: Session = Depends(get_db),
    post_in: PostCreate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Create new post and notify the author's followers.
    """
    return PostEnvelope(post=create_post(db, post_in, current_user))

@router.delete("/{post_id}", response_model=Message)
def delete_post_by_id(
    *,
    db: Session = Depends(get_db),
    post_id: str,
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Soft-delete a post. Only its author may delete it.
    """
    soft_delete_post(db, post_id, current_user)
    return Message(message="Post deleted successfully")
