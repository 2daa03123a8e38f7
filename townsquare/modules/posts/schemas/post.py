from typing import Optional, List
from datetime import datetime

from townsquare.core.schemas import CamelModel
from townsquare.modules.posts.models.post import PostCategory
from townsquare.modules.user_management.schemas.user import UserSummary

class PostCreate(CamelModel):
    # Length rules are enforced by the service so they surface as 400s
    content: Optional[str] = None
    image_url: Optional[str] = None
    category: PostCategory = PostCategory.GENERAL

class PostSummary(CamelModel):
    """Post block embedded in notifications"""
    id: str
    content: str
    image_url: Optional[str] = None

class Post(CamelModel):
    """Post model returned to client"""
    id: str
    content: str
    image_url: Optional[str] = None
    category: PostCategory
    like_count: int
    comment_count: int
    created_at: datetime
    author: UserSummary
    liked_by_me: bool = False

class PostEnvelope(CamelModel):
    post: Post

class PostListResponse(CamelModel):
    posts: List[Post]
    has_more: bool
