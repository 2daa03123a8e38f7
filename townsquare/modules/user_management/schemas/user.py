from typing import List, Optional
from datetime import datetime

from townsquare.core.schemas import CamelModel
from townsquare.modules.user_management.models.user import UserRole

class UserSummary(CamelModel):
    """Author/sender block embedded in posts, comments and notifications"""
    id: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None

class UserBase(CamelModel):
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    avatar_url: Optional[str] = None

class UserUpdate(UserBase):
    pass

class User(UserBase):
    """User model returned to client"""
    id: str
    email: str
    username: str
    role: UserRole
    is_active: bool
    is_verified: bool
    created_at: datetime
    updated_at: datetime

class UserEnvelope(CamelModel):
    user: User

class UserListItem(UserSummary):
    bio: Optional[str] = None
    follower_count: int = 0
    is_following: bool = False
    created_at: datetime

class UserListResponse(CamelModel):
    users: List[UserListItem]
    has_more: bool

class DiscoverUser(UserSummary):
    bio: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    is_verified: bool
    follower_count: int = 0
    following_count: int = 0
    post_count: int = 0

class DiscoverResponse(CamelModel):
    users: List[DiscoverUser]
    following_ids: List[str]
