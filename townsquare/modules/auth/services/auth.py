import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from townsquare.core.exceptions import ValidationError
from townsquare.modules.auth.services.identity import Identity
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.services.user import (
    generate_unique_username, get_user, get_user_by_email
)

logger = logging.getLogger("townsquare")

def _split_name(name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    parts = (name or "").strip().split(" ", 1)
    first = parts[0] if parts and parts[0] else None
    last = parts[1] if len(parts) > 1 else None
    return first, last

def _update_existing_user(db: Session, user: User, identity: Identity) -> User:
    """Fill profile gaps from the identity provider"""
    updated = False

    if identity.picture and not user.avatar_url:
        user.avatar_url = identity.picture
        updated = True

    if identity.email_verified and not user.is_verified:
        user.is_verified = True
        updated = True

    if updated:
        db.commit()
        db.refresh(user)

    return user

def sync_user_from_identity(db: Session, identity: Identity) -> Tuple[User, bool]:
    """Gets or creates the User row for a signed-in identity"""
    user = get_user(db, identity.user_id)
    if user:
        return _update_existing_user(db, user, identity), False

    if not identity.email:
        raise ValidationError("Email is required to create an account")

    if get_user_by_email(db, identity.email):
        logger.warning(f"Email {identity.email} already belongs to another account")
        raise ValidationError("Email already registered")

    first_name, last_name = _split_name(identity.name)
    new_user = User(
        id=identity.user_id,
        email=identity.email,
        username=generate_unique_username(db, identity.email),
        first_name=first_name,
        last_name=last_name,
        avatar_url=identity.picture,
        is_active=True,
        is_verified=identity.email_verified,
    )

    try:
        db.add(new_user)
        db.commit()
    except IntegrityError:
        # A parallel first sign-in of the same identity created the row
        db.rollback()
        user = get_user(db, identity.user_id)
        if user:
            return user, False
        raise
    db.refresh(new_user)

    logger.info(f"Created user {new_user.id} ({new_user.username}) from identity provider")
    return new_user, True
