from typing import Any, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from townsquare.db.session import get_db
from townsquare.deps import get_current_user, get_current_user_id, get_optional_user_id
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.schemas.user import (
    DiscoverResponse, User as UserSchema, UserEnvelope, UserListResponse, UserUpdate
)
from townsquare.modules.user_management.services.user import (
    USERS_DEFAULT_LIMIT, discover_users, list_users, update_user
)

router = APIRouter()
logger = logging.getLogger("townsquare")

@router.get("", response_model=UserListResponse)
def read_users(
    *,
    db: Session = Depends(get_db),
    page: int = Query(0),
    limit: int = Query(USERS_DEFAULT_LIMIT),
    q: str = Query("", description="Case-insensitive match on username or name"),
    current_user_id: Optional[str] = Depends(get_optional_user_id),
) -> Any:
    """List active users, newest first"""
    return list_users(db, current_user_id=current_user_id, page=page, limit=limit, q=q)

@router.get("/discover", response_model=DiscoverResponse)
def read_discover_users(
    db: Session = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
) -> Any:
    """Users the caller might want to follow, with the ids they already follow"""
    return discover_users(db, current_user_id)

@router.get("/me", response_model=UserEnvelope)
def read_user_me(
    current_user: User = Depends(get_current_user),
) -> Any:
    """Get current user"""
    return UserEnvelope(user=UserSchema.model_validate(current_user))

@router.patch("/me", response_model=UserEnvelope)
def update_user_me(
    *,
    db: Session = Depends(get_db),
    user_in: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Update current user"""
    return UserEnvelope(user=UserSchema.model_validate(update_user(db, current_user, user_in)))
