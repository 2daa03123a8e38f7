# Implements token-related functionality:
# JWT access token generation (development tooling and tests)
# JWT decoding against the configured identity provider secret
# Provides the primitives used by the identity resolvers in the auth module

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union
import logging

from jose import jwt, JWTError

from townsquare.core.config import settings
from townsquare.core.exceptions import UnauthorizedError

logger = logging.getLogger("townsquare")

def create_access_token(
    subject: Union[str, Any],
    expires_delta: Optional[timedelta] = None,
    claims: Optional[Dict[str, Any]] = None,
) -> str:
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject)}
    if settings.AUTH_JWT_AUDIENCE:
        to_encode["aud"] = settings.AUTH_JWT_AUDIENCE
    if claims:
        to_encode.update(claims)
    return jwt.encode(to_encode, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)

def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raise UnauthorizedError on any failure."""
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.warning(f"JWT verification error: {e}")
        raise UnauthorizedError("Invalid or expired token")

    if not payload.get("sub"):
        logger.warning("Token payload missing 'sub' field")
        raise UnauthorizedError("Invalid or expired token")

    return payload
