from typing import Optional
import uuid
import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.core.exceptions import ConflictError, NotFoundError, ValidationError
from townsquare.modules.follows.models.follow import Follow
from townsquare.modules.notifications.services.notification_events import create_follow_notification
from townsquare.modules.user_management.services.user import get_active_user

logger = logging.getLogger(__name__)

def get_follow(db: Session, follower_id: str, following_id: str) -> Optional[Follow]:
    """Get follow edge by follower and followed user IDs"""
    return db.query(Follow).filter(
        Follow.follower_id == follower_id,
        Follow.following_id == following_id
    ).first()

def is_following(db: Session, follower_id: str, following_id: str) -> bool:
    return get_follow(db, follower_id, following_id) is not None

def _require_target(target_id: Optional[str]) -> str:
    target_id = (target_id or "").strip()
    if not target_id:
        raise ValidationError("userId is required")
    return target_id

def follow_user(db: Session, follower_id: str, target_id: Optional[str]) -> Follow:
    """Follow another active user and notify them"""
    target_id = _require_target(target_id)
    if target_id == follower_id:
        raise ValidationError("You cannot follow yourself")

    if not get_active_user(db, target_id):
        raise NotFoundError("User", context={"user_id": target_id})

    if is_following(db, follower_id, target_id):
        raise ConflictError("Already following this user")

    follow = Follow(id=str(uuid.uuid4()), follower_id=follower_id, following_id=target_id)
    try:
        db.add(follow)
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent follow of the same user
        db.rollback()
        raise ConflictError("Already following this user")
    db.refresh(follow)
    logger.info(f"User {follower_id} followed {target_id}")

    create_follow_notification(db, follower_id, target_id)
    return follow

def unfollow_user(db: Session, follower_id: str, target_id: Optional[str]) -> None:
    """Remove a follow edge; no notification is sent"""
    target_id = _require_target(target_id)

    result = db.execute(
        delete(Follow).where(Follow.follower_id == follower_id, Follow.following_id == target_id)
    )
    if not result.rowcount:
        db.rollback()
        raise ConflictError("Not following this user")
    db.commit()
    logger.info(f"User {follower_id} unfollowed {target_id}")
