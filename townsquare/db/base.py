# Import all models here so Alembic and create_all can detect them
from townsquare.db.session import Base

from townsquare.modules.user_management.models.user import User
from townsquare.modules.posts.models.post import Post
from townsquare.modules.posts.comments.models.comment import Comment
from townsquare.modules.posts.likes.models.like import Like
from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.notifications.models.notification import Notification
