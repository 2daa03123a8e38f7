from typing import Dict, List, Optional, Set
import logging
import uuid

from sqlalchemy.orm import Session

from townsquare.core.config import settings
from townsquare.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from townsquare.modules.notifications.services.notification_events import create_post_notifications
from townsquare.modules.posts.likes.models.like import Like
from townsquare.modules.posts.models.post import Post
from townsquare.modules.posts.schemas.post import Post as PostSchema, PostCreate, PostListResponse
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.services.user import get_users_by_ids, to_summary

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50

def clean_content(content: Optional[str], max_length: int, label: str = "Content") -> str:
    """Trim and bound user-entered text, raising ValidationError"""
    content = (content or "").strip()
    if not content:
        raise ValidationError(f"{label} required")
    if len(content) > max_length:
        raise ValidationError(f"{label} too long (max {max_length} characters)")
    return content

def get_post(db: Session, post_id: str) -> Optional[Post]:
    """Get post by ID"""
    return db.query(Post).filter(Post.id == post_id).first()

def get_active_post(db: Session, post_id: str) -> Post:
    post = db.query(Post).filter(Post.id == post_id, Post.is_active == True).first()
    if not post:
        raise NotFoundError("Post", context={"post_id": post_id})
    return post

def liked_post_ids(db: Session, user_id: Optional[str], post_ids: List[str]) -> Set[str]:
    if not user_id or not post_ids:
        return set()
    rows = db.query(Like.post_id).filter(Like.user_id == user_id, Like.post_id.in_(post_ids)).all()
    return {row[0] for row in rows}

def to_post_schema(post: Post, author: User, liked_by_me: bool = False) -> PostSchema:
    return PostSchema(
        id=post.id,
        content=post.content,
        image_url=post.image_url,
        category=post.category,
        like_count=post.like_count,
        comment_count=post.comment_count,
        created_at=post.created_at,
        author=to_summary(author),
        liked_by_me=liked_by_me,
    )

def get_posts(db: Session, viewer_id: Optional[str] = None, page: int = 0, limit: int = DEFAULT_LIMIT) -> PostListResponse:
    """Active posts newest first, one page at a time"""
    page = max(0, page)
    limit = max(1, min(MAX_LIMIT, limit))
    logger.debug(f"Getting posts with page={page}, limit={limit}")

    # Fetch one extra row to detect hasMore
    posts = (
        db.query(Post)
        .filter(Post.is_active == True)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .offset(page * limit)
        .limit(limit + 1)
        .all()
    )
    has_more = len(posts) > limit
    posts = posts[:limit]

    authors: Dict[str, User] = get_users_by_ids(db, {p.author_id for p in posts})
    liked = liked_post_ids(db, viewer_id, [p.id for p in posts])

    return PostListResponse(
        posts=[to_post_schema(p, authors.get(p.author_id), p.id in liked) for p in posts],
        has_more=has_more,
    )

def create_post(db: Session, post_in: PostCreate, author: User) -> PostSchema:
    """Create new post and notify the author's followers"""
    content = clean_content(post_in.content, settings.POST_MAX_LENGTH)

    post = Post(
        id=str(uuid.uuid4()),
        author_id=author.id,
        content=content,
        image_url=post_in.image_url,
        category=post_in.category,
        like_count=0,
        comment_count=0,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    logger.info(f"Created post {post.id} for author {author.id}")

    create_post_notifications(db, author.id, post.id)

    return to_post_schema(post, author, liked_by_me=False)

def soft_delete_post(db: Session, post_id: str, user: User) -> Post:
    """Hide a post from feeds; only its author may do this"""
    post = get_active_post(db, post_id)
    if post.author_id != user.id:
        raise ForbiddenError("Not enough permissions")

    post.is_active = False
    db.commit()
    db.refresh(post)
    logger.info(f"Post {post_id} soft-deleted by {user.id}")
    return post
