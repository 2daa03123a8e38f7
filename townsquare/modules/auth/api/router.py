"""Authentication router: links identity-provider sign-ins to local users"""
from typing import Any
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from townsquare.db.session import get_db
from townsquare.deps import get_identity
from townsquare.modules.auth.schemas.auth import SyncResponse
from townsquare.modules.auth.services.auth import sync_user_from_identity
from townsquare.modules.auth.services.identity import Identity
from townsquare.modules.user_management.schemas.user import User as UserSchema

router = APIRouter()
logger = logging.getLogger("townsquare")

@router.post("/sync", response_model=SyncResponse)
def sync_user(
    *,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Any:
    """Create the local user for a newly signed-in identity, or return the existing one"""
    user, is_new_user = sync_user_from_identity(db, identity)
    if not user.is_active:
        logger.warning(f"Inactive user {user.id} attempted to sync")
    return SyncResponse(user=UserSchema.model_validate(user), is_new_user=is_new_user)
