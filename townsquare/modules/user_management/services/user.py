from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from townsquare.core.exceptions import ConflictError, ValidationError
from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.posts.models.post import Post
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.schemas.user import (
    DiscoverResponse, DiscoverUser, UserListItem, UserListResponse, UserSummary, UserUpdate
)

logger = logging.getLogger(__name__)

DISCOVER_LIMIT = 50
USERS_DEFAULT_LIMIT = 12
USERS_MAX_LIMIT = 50

def get_user(db: Session, user_id: str) -> Optional[User]:
    """Get user by ID"""
    return db.query(User).filter(User.id == user_id).first()

def get_active_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id, User.is_active == True).first()

def get_user_by_username(db: Session, username: str) -> Optional[User]:
    """Get user by username"""
    return db.query(User).filter(User.username == username).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()

def get_users_by_ids(db: Session, user_ids: Iterable[str]) -> Dict[str, User]:
    user_ids = set(user_ids)
    if not user_ids:
        return {}
    return {user.id: user for user in db.query(User).filter(User.id.in_(user_ids)).all()}

def to_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary.model_validate(user)

def generate_unique_username(db: Session, email: str) -> str:
    """Generates a unique username based on email"""
    username = email.split("@")[0]
    base_username = username
    suffix = 1

    while get_user_by_username(db, username):
        username = f"{base_username}{suffix}"
        suffix += 1

    return username

def update_user(db: Session, user: User, user_in: UserUpdate) -> User:
    """Apply a partial profile update"""
    update_data = user_in.model_dump(exclude_unset=True)

    if "username" in update_data:
        username = (update_data["username"] or "").strip()
        if not username:
            raise ValidationError("Username cannot be empty")
        existing = get_user_by_username(db, username)
        if existing and existing.id != user.id:
            raise ConflictError("Username already taken")
        update_data["username"] = username

    for field, value in update_data.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    logger.info(f"Updated profile fields {sorted(update_data)} for user {user.id}")
    return user

def follower_counts(db: Session, user_ids: List[str]) -> Dict[str, int]:
    if not user_ids:
        return {}
    rows = (
        db.query(Follow.following_id, func.count(Follow.id))
        .filter(Follow.following_id.in_(user_ids))
        .group_by(Follow.following_id)
        .all()
    )
    return dict(rows)

def following_counts(db: Session, user_ids: List[str]) -> Dict[str, int]:
    if not user_ids:
        return {}
    rows = (
        db.query(Follow.follower_id, func.count(Follow.id))
        .filter(Follow.follower_id.in_(user_ids))
        .group_by(Follow.follower_id)
        .all()
    )
    return dict(rows)

def post_counts(db: Session, user_ids: List[str], active_only: bool = True) -> Dict[str, int]:
    if not user_ids:
        return {}
    query = db.query(Post.author_id, func.count(Post.id)).filter(Post.author_id.in_(user_ids))
    if active_only:
        query = query.filter(Post.is_active == True)
    return dict(query.group_by(Post.author_id).all())

def get_following_ids(db: Session, follower_id: str, among: Optional[List[str]] = None) -> List[str]:
    query = db.query(Follow.following_id).filter(Follow.follower_id == follower_id)
    if among is not None:
        if not among:
            return []
        query = query.filter(Follow.following_id.in_(among))
    return [row[0] for row in query.all()]

def list_users(
    db: Session,
    current_user_id: Optional[str] = None,
    page: int = 0,
    limit: int = USERS_DEFAULT_LIMIT,
    q: str = "",
) -> UserListResponse:
    """Active users newest first, with follower counts and follow state"""
    page = max(0, page)
    limit = max(1, min(USERS_MAX_LIMIT, limit))

    query = db.query(User).filter(User.is_active == True)
    q = (q or "").strip()
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            User.username.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))
    if current_user_id:
        query = query.filter(User.id != current_user_id)

    # Fetch one extra row to detect hasMore
    users = query.order_by(User.created_at.desc()).offset(page * limit).limit(limit + 1).all()
    has_more = len(users) > limit
    users = users[:limit]

    user_ids = [u.id for u in users]
    counts = follower_counts(db, user_ids)
    following = set(get_following_ids(db, current_user_id, user_ids)) if current_user_id else set()

    items = [
        UserListItem(
            id=u.id,
            username=u.username,
            first_name=u.first_name,
            last_name=u.last_name,
            avatar_url=u.avatar_url,
            bio=u.bio,
            follower_count=counts.get(u.id, 0),
            is_following=u.id in following,
            created_at=u.created_at,
        )
        for u in users
    ]
    return UserListResponse(users=items, has_more=has_more)

def discover_users(db: Session, current_user_id: str) -> DiscoverResponse:
    """Candidates to follow: verified users first, then newest"""
    users = (
        db.query(User)
        .filter(User.id != current_user_id, User.is_active == True)
        .order_by(User.is_verified.desc(), User.created_at.desc())
        .limit(DISCOVER_LIMIT)
        .all()
    )

    user_ids = [u.id for u in users]
    followers = follower_counts(db, user_ids)
    following = following_counts(db, user_ids)
    posts = post_counts(db, user_ids)

    candidates = [
        DiscoverUser(
            id=u.id,
            username=u.username,
            first_name=u.first_name,
            last_name=u.last_name,
            avatar_url=u.avatar_url,
            bio=u.bio,
            website=u.website,
            location=u.location,
            is_verified=u.is_verified,
            follower_count=followers.get(u.id, 0),
            following_count=following.get(u.id, 0),
            post_count=posts.get(u.id, 0),
        )
        for u in users
    ]
    return DiscoverResponse(users=candidates, following_ids=get_following_ids(db, current_user_id))
