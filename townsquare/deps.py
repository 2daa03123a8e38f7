from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from townsquare.core.exceptions import ForbiddenError, TownsquareError, UnauthorizedError
from townsquare.db.session import SessionLocal, get_db
from townsquare.modules.auth.services.identity import Identity, IdentityResolver, get_identity_resolver
from townsquare.modules.user_management.models.user import User
from townsquare.modules.user_management.services.user import get_user

# Bearer token; missing credentials are reported by the dependencies below
bearer_scheme = HTTPBearer(auto_error=False)

def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    return None

def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Identity:
    """
    Dependency for resolving the caller's identity from the bearer token
    """
    token = _bearer_token(credentials)
    if not token:
        raise UnauthorizedError("Not authenticated")
    return resolver.resolve(token)

def _load_current_user(db: Session, identity: Identity) -> User:
    user = get_user(db, user_id=identity.user_id)
    if not user:
        raise UnauthorizedError("User not found, sync your account first")
    if not user.is_active:
        raise ForbiddenError("Inactive user")
    return user

def get_current_user(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> User:
    """
    Dependency for getting the current authenticated, active user
    """
    return _load_current_user(db, identity)

def get_current_user_id(current_user: User = Depends(get_current_user)) -> str:
    return current_user.id

def get_optional_user_id(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[str]:
    """
    Caller's user id when a valid token is sent, None for anonymous requests
    """
    token = _bearer_token(credentials)
    if not token:
        return None
    try:
        return _load_current_user(db, resolver.resolve(token)).id
    except TownsquareError:
        return None

def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Dependency for admin-only routes
    """
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user

def get_stream_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token: Optional[str] = Query(None, description="Bearer token for clients that cannot set headers"),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> str:
    """
    Like get_current_user_id but also accepts the token as a query parameter.

    Uses a short-lived session so a long-running stream does not pin a
    pooled connection.
    """
    token = _bearer_token(credentials) or token
    if not token:
        raise UnauthorizedError("Not authenticated")
    identity = resolver.resolve(token)
    db = SessionLocal()
    try:
        return _load_current_user(db, identity).id
    finally:
        db.close()
