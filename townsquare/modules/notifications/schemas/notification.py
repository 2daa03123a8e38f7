from typing import List, Optional
from datetime import datetime

from townsquare.core.schemas import CamelModel
from townsquare.modules.notifications.models.notification import NotificationType
from townsquare.modules.posts.schemas.post import PostSummary
from townsquare.modules.user_management.schemas.user import UserSummary

class Notification(CamelModel):
    """Notification model returned to client"""
    id: str
    type: NotificationType
    message: str
    recipient_id: str
    sender_id: str
    post_id: Optional[str] = None
    is_read: bool
    created_at: datetime
    sender: Optional[UserSummary] = None
    post: Optional[PostSummary] = None

class NotificationList(CamelModel):
    notifications: List[Notification]

class UnreadCount(CamelModel):
    count: int

class MarkAllRead(CamelModel):
    message: str
    count: int
