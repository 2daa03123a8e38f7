from typing import List, Optional
from datetime import datetime

from townsquare.core.schemas import CamelModel
from townsquare.modules.user_management.models.user import UserRole
from townsquare.modules.user_management.schemas.user import User, UserUpdate

class AdminUserUpdate(UserUpdate):
    """Fields an admin may change on any account"""
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None

class AdminUser(User):
    post_count: int = 0
    follower_count: int = 0
    following_count: int = 0

class AdminUserList(CamelModel):
    users: List[AdminUser]

class AdminPost(CamelModel):
    id: str
    content: str
    image_url: Optional[str] = None
    author_id: str
    is_active: bool
    created_at: datetime

class AdminPostList(CamelModel):
    posts: List[AdminPost]

class AdminUserEnvelope(CamelModel):
    user: AdminUser
