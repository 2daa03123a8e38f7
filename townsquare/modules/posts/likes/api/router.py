from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from townsquare.db.session import get_db
from townsquare.deps import get_current_user_id
from townsquare.modules.posts.likes.schemas.like import LikeToggle
from townsquare.modules.posts.likes.services.like import toggle_like

router = APIRouter()

@router.post("/{post_id}/like", response_model=LikeToggle)
def toggle_post_like(
    *,
    db: Session = Depends(get_db),
    post_id: str,
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Like the post, or remove the caller's like if it is already there"""
    return toggle_like(db, post_id, current_user_id)
