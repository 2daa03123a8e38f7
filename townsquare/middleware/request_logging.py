from fastapi import Request
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("townsquare")

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path

        response = await call_next(request)

        # Streaming responses return once headers are ready, so this is time to first byte
        process_time = time.perf_counter() - start_time
        logger.info(f"{method} {path} -> {response.status_code} in {process_time:.4f}s")

        return response
