"""
Application exception hierarchy.

Services raise these instead of HTTPException so the same code can be driven
from routers, background listeners and tests. The handler registered in
main.py turns them into ``{"detail": message}`` responses with the matching
status code. ``context`` is logged server-side only.
"""
from typing import Any, Dict, Optional

from fastapi import status


class TownsquareError(Exception):
    """Base exception for all application errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.context = context or {}
        super().__init__(self.message)


class UnauthorizedError(TownsquareError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(TownsquareError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(TownsquareError):
    """Referenced row is absent, or not owned by the caller."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", context: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} not found", context)
        self.resource = resource


class ValidationError(TownsquareError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(TownsquareError):
    # Redundant state changes are reported as 400, same as validation failures
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Conflicting state"


class InternalError(TownsquareError):
    """Storage failure. The message returned to clients stays generic."""
