"""Identity resolvers: turn a bearer token into the caller's identity"""
import logging
import os
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import auth, credentials

from townsquare.core.config import settings
from townsquare.core.exceptions import UnauthorizedError
from townsquare.core.security import decode_access_token

logger = logging.getLogger("townsquare")

@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    email_verified: bool = False

class IdentityResolver:
    """Verifies a bearer token issued by the external identity provider"""

    def resolve(self, token: str) -> Identity:
        raise NotImplementedError

class JWTIdentityResolver(IdentityResolver):
    """HS256 tokens signed with the provider's project secret; subject is the user id"""

    def resolve(self, token: str) -> Identity:
        if not token:
            raise UnauthorizedError("Not authenticated")
        payload = decode_access_token(token)
        metadata: Dict[str, Any] = payload.get("user_metadata") or {}
        return Identity(
            user_id=str(payload["sub"]),
            email=payload.get("email"),
            name=payload.get("name") or metadata.get("full_name") or metadata.get("name"),
            picture=payload.get("picture") or metadata.get("avatar_url"),
            email_verified=bool(payload.get("email_verified", False)),
        )

class FirebaseIdentityResolver(IdentityResolver):
    """Firebase ID tokens verified with firebase-admin"""

    max_init_attempts = 3
    init_retry_delay = 2  # seconds

    def __init__(self, service_account_path: Optional[str] = None):
        self.service_account_path = service_account_path or settings.FIREBASE_SERVICE_ACCOUNT_PATH
        self._initialized = False
        self._init_attempts = 0

    def initialize(self) -> bool:
        """Initialize the Firebase app with a bounded number of retries"""
        if self._initialized:
            return True

        if self._init_attempts >= self.max_init_attempts:
            logger.error(f"Failed to initialize Firebase after {self.max_init_attempts} attempts")
            return False

        self._init_attempts += 1

        try:
            if firebase_admin._apps:
                self._initialized = True
                return True
            if self.service_account_path and os.path.exists(self.service_account_path):
                cred = credentials.Certificate(self.service_account_path)
                firebase_admin.initialize_app(cred)
                logger.info(f"Firebase initialized with service account from {self.service_account_path}")
            else:
                firebase_admin.initialize_app()
                logger.warning("Firebase initialized without explicit credentials")

            self._initialized = True
            return True
        except Exception as e:
            logger.error(f"Failed to initialize Firebase (attempt {self._init_attempts}): {e}")
            time.sleep(self.init_retry_delay)
            return False

    def resolve(self, token: str) -> Identity:
        if not token:
            raise UnauthorizedError("Not authenticated")
        if not self._initialized and not self.initialize():
            logger.error("Cannot verify token: Firebase not initialized")
            raise UnauthorizedError("Identity provider unavailable")

        try:
            decoded = auth.verify_id_token(token)
        except Exception as e:
            logger.warning(f"Firebase token verification failed ({type(e).__name__}): {e}")
            raise UnauthorizedError("Invalid or expired token")

        return Identity(
            user_id=decoded["uid"],
            email=decoded.get("email"),
            name=decoded.get("name"),
            picture=decoded.get("picture"),
            email_verified=bool(decoded.get("email_verified", False)),
        )

@lru_cache()
def get_identity_resolver() -> IdentityResolver:
    """Resolver for the configured AUTH_PROVIDER"""
    if settings.AUTH_PROVIDER == "firebase":
        return FirebaseIdentityResolver()
    if settings.AUTH_PROVIDER == "jwt":
        return JWTIdentityResolver()
    raise ValueError(f"Unknown AUTH_PROVIDER: {settings.AUTH_PROVIDER}")
