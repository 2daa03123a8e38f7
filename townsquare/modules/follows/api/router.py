from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from townsquare.core.schemas import Message
from townsquare.db.session import get_db
from townsquare.deps import get_current_user_id
from townsquare.modules.follows.schemas.follow import FollowRequest
from townsquare.modules.follows.services.follow import follow_user, unfollow_user

router = APIRouter()

@router.post("/follow", response_model=Message)
def follow(
    *,
    db: Session = Depends(get_db),
    follow_in: FollowRequest,
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Follow another user"""
    follow_user(db, current_user_id, follow_in.user_id)
    return Message(message="Followed successfully")

@router.post("/unfollow", response_model=Message)
def unfollow(
    *,
    db: Session = Depends(get_db),
    follow_in: FollowRequest,
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Stop following a user"""
    unfollow_user(db, current_user_id, follow_in.user_id)
    return Message(message="Unfollowed successfully")
