from fastapi import Request
import logging
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("townsquare")

# Paths that are readable without a token
PUBLIC_PATHS = ("/docs", "/redoc", "/openapi.json")

class AuthLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        has_auth = bool(request.headers.get("Authorization")) or "token" in request.query_params

        response = await call_next(request)

        # Log auth-related status codes
        if response.status_code in (401, 403):
            logger.warning(
                f"Auth error: {response.status_code} on {request.method} {path} "
                f"({'with' if has_auth else 'without'} credentials)"
            )
        elif not has_auth and response.status_code >= 400 and not path.endswith(PUBLIC_PATHS):
            logger.debug(f"Unauthenticated request to {path} failed with {response.status_code}")

        return response
