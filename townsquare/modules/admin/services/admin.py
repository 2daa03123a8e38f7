import logging
from typing import List

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from townsquare.core.exceptions import InternalError, NotFoundError, ValidationError
from townsquare.modules.admin.schemas.admin import AdminPost, AdminUser, AdminUserUpdate
from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.notifications.models.notification import Notification
from townsquare.modules.posts.comments.models.comment import Comment
from townsquare.modules.posts.likes.models.like import Like
from townsquare.modules.posts.models.post import Post
from townsquare.modules.posts.services.counters import reconcile_post_counters
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.schemas.user import UserUpdate
from townsquare.modules.user_management.services.user import (
    follower_counts, following_counts, get_user, post_counts, update_user
)

logger = logging.getLogger("townsquare")

def _require_user(db: Session, user_id: str) -> User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User", context={"user_id": user_id})
    return user

def _to_admin_user(user: User, posts: dict, followers: dict, following: dict) -> AdminUser:
    admin_user = AdminUser.model_validate(user)
    admin_user.post_count = posts.get(user.id, 0)
    admin_user.follower_count = followers.get(user.id, 0)
    admin_user.following_count = following.get(user.id, 0)
    return admin_user

def list_all_users(db: Session) -> List[AdminUser]:
    """Every account, newest first, with post and follow counts"""
    users = db.query(User).order_by(User.created_at.desc()).all()
    user_ids = [u.id for u in users]
    posts = post_counts(db, user_ids, active_only=False)
    followers = follower_counts(db, user_ids)
    following = following_counts(db, user_ids)
    return [_to_admin_user(u, posts, followers, following) for u in users]

def admin_update_user(db: Session, user_id: str, user_in: AdminUserUpdate) -> AdminUser:
    """Apply an admin edit; only whitelisted profile and status fields are touched"""
    user = _require_user(db, user_id)
    update_data = user_in.model_dump(exclude_unset=True)

    profile_fields = set(UserUpdate.model_fields)
    profile_update = UserUpdate(**{k: v for k, v in update_data.items() if k in profile_fields})
    for field in ("role", "is_active", "is_verified"):
        if field in update_data and update_data[field] is not None:
            setattr(user, field, update_data[field])

    # Commits profile and status changes together
    user = update_user(db, user, profile_update)
    logger.info(f"Admin updated user {user_id}: {sorted(update_data)}")

    return _to_admin_user(
        user,
        post_counts(db, [user.id], active_only=False),
        follower_counts(db, [user.id]),
        following_counts(db, [user.id]),
    )

def delete_user(db: Session, user_id: str, admin_id: str) -> None:
    """Delete a user and all related data, then repair counters they affected"""
    if user_id == admin_id:
        raise ValidationError("You cannot delete your own account")
    user = _require_user(db, user_id)

    try:
        own_post_ids = [row[0] for row in db.query(Post.id).filter(Post.author_id == user_id).all()]

        # Posts by others whose counters include this user's likes or comments
        touched = {row[0] for row in db.query(Like.post_id).filter(Like.user_id == user_id).all()}
        touched |= {row[0] for row in db.query(Comment.post_id).filter(Comment.author_id == user_id).all()}
        touched -= set(own_post_ids)

        db.query(Notification).filter(or_(
            Notification.recipient_id == user_id,
            Notification.sender_id == user_id,
        )).delete(synchronize_session=False)
        db.query(Follow).filter(or_(
            Follow.follower_id == user_id,
            Follow.following_id == user_id,
        )).delete(synchronize_session=False)
        db.query(Like).filter(Like.user_id == user_id).delete(synchronize_session=False)
        db.query(Comment).filter(Comment.author_id == user_id).delete(synchronize_session=False)

        if own_post_ids:
            _delete_post_rows(db, own_post_ids)

        reconcile_post_counters(db, touched)

        db.delete(user)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting user {user_id}: {e}")
        raise InternalError(context={"user_id": user_id}) from e

    logger.info(f"Admin {admin_id} deleted user {user_id} ({len(own_post_ids)} posts, {len(touched)} posts reconciled)")

def _delete_post_rows(db: Session, post_ids: List[str]) -> None:
    db.query(Notification).filter(Notification.post_id.in_(post_ids)).delete(synchronize_session=False)
    db.query(Like).filter(Like.post_id.in_(post_ids)).delete(synchronize_session=False)
    db.query(Comment).filter(Comment.post_id.in_(post_ids)).delete(synchronize_session=False)
    db.query(Post).filter(Post.id.in_(post_ids)).delete(synchronize_session=False)

def list_user_posts(db: Session, user_id: str) -> List[AdminPost]:
    """All posts by a user, active or not"""
    _require_user(db, user_id)
    posts = db.query(Post).filter(Post.author_id == user_id).order_by(Post.created_at.desc()).all()
    return [AdminPost.model_validate(p) for p in posts]

def delete_post(db: Session, post_id: str) -> None:
    """Hard-delete a post with its likes, comments and notifications"""
    if not db.query(Post.id).filter(Post.id == post_id).first():
        raise NotFoundError("Post", context={"post_id": post_id})
    try:
        _delete_post_rows(db, [post_id])
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting post {post_id}: {e}")
        raise InternalError(context={"post_id": post_id}) from e
    logger.info(f"Admin deleted post {post_id}")
