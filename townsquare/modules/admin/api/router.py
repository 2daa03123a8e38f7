from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from townsquare.core.schemas import Message
from townsquare.db.session import get_db
from townsquare.deps import get_current_admin
from townsquare.modules.admin.schemas.admin import (
    AdminPostList, AdminUserEnvelope, AdminUserList, AdminUserUpdate
)
from townsquare.modules.admin.services.admin import (
    admin_update_user, delete_post, delete_user, list_all_users, list_user_posts
)
from townsquare.modules.user_management.models.user import User

router = APIRouter()

@router.get("/users", response_model=AdminUserList)
def read_all_users(
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> Any:
    """All users with post and follow counts"""
    return AdminUserList(users=list_all_users(db))

@router.patch("/users/{user_id}", response_model=AdminUserEnvelope)
def update_user_by_id(
    *,
    db: Session = Depends(get_db),
    user_id: str,
    user_in: AdminUserUpdate,
    admin: User = Depends(get_current_admin),
) -> Any:
    return AdminUserEnvelope(user=admin_update_user(db, user_id, user_in))

@router.delete("/users/{user_id}", response_model=Message)
def delete_user_by_id(
    *,
    db: Session = Depends(get_db),
    user_id: str,
    admin: User = Depends(get_current_admin),
) -> Any:
    """Delete a user and everything they created"""
    delete_user(db, user_id, admin.id)
    return Message(message="User deleted successfully")

@router.get("/users/{user_id}/posts", response_model=AdminPostList)
def read_user_posts(
    *,
    db: Session = Depends(get_db),
    user_id: str,
    admin: User = Depends(get_current_admin),
) -> Any:
    return AdminPostList(posts=list_user_posts(db, user_id))

@router.delete("/posts/{post_id}", response_model=Message)
def delete_post_by_id(
    *,
    db: Session = Depends(get_db),
    post_id: str,
    admin: User = Depends(get_current_admin),
) -> Any:
    """Permanently delete a post"""
    delete_post(db, post_id)
    return Message(message="Post deleted successfully")
