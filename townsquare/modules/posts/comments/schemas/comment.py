from typing import Optional, List
from datetime import datetime

from townsquare.core.schemas import CamelModel
from townsquare.modules.user_management.schemas.user import UserSummary

class CommentCreate(CamelModel):
    content: Optional[str] = None

class Comment(CamelModel):
    """Comment model returned to client"""
    id: str
    content: str
    post_id: str
    author_id: str
    created_at: datetime
    author: Optional[UserSummary] = None

class CommentEnvelope(CamelModel):
    comment: Comment

class CommentList(CamelModel):
    comments: List[Comment]

class CommentDeleted(CamelModel):
    message: str
    comment_count: int
