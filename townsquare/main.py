from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import logging
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from townsquare.core.config import settings
from townsquare.core.exceptions import TownsquareError
from townsquare.db.session import SessionLocal
from townsquare.middleware.request_logging import RequestLoggingMiddleware
from townsquare.middleware.auth_logging import AuthLoggingMiddleware
from townsquare.modules.auth.api.router import router as auth_router
from townsquare.modules.user_management.api.router import router as user_router
from townsquare.modules.follows.api.router import router as follows_router
from townsquare.modules.posts.api.router import router as posts_router
from townsquare.modules.posts.comments.api.router import router as comments_router
from townsquare.modules.posts.likes.api.router import router as likes_router
from townsquare.modules.notifications.api.router import router as notifications_router
from townsquare.modules.admin.api.router import router as admin_router
from townsquare.modules.notifications.realtime.capture import install_session_capture
from townsquare.modules.notifications.realtime.change_feed import change_feed
from townsquare.db.init_db import create_all_tables

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("townsquare")

# Initialize the FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    exception_handlers={
        RequestValidationError: request_validation_exception_handler,
        HTTPException: http_exception_handler,
    },
    debug=settings.DEBUG,
    description="Social network backend with real-time notifications",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    swagger_ui_parameters={"defaultModelsExpandDepth": -1},
)

# Background LISTEN thread when the postgres change feed is selected
_change_listener = None

@app.exception_handler(TownsquareError)
async def townsquare_error_handler(request: Request, exc: TownsquareError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.context}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message} {exc.context}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

@app.on_event("startup")
async def startup_event():
    global _change_listener
    logger.info(f"Starting server in {settings.ENVIRONMENT} mode")

    create_all_tables()

    if settings.CHANGE_FEED_BACKEND == "postgres":
        from townsquare.db.session import engine
        from townsquare.modules.notifications.models.notification import NOTIFY_TRIGGER_NAME
        from townsquare.modules.notifications.realtime.pg_listener import (
            PostgresChangeListener, dsn_from_url, trigger_installed
        )

        if not trigger_installed(engine, NOTIFY_TRIGGER_NAME):
            logger.error(f"Trigger {NOTIFY_TRIGGER_NAME} is missing; the postgres change feed would never deliver")
            raise RuntimeError(f"Trigger {NOTIFY_TRIGGER_NAME} is not installed on the notifications table")

        _change_listener = PostgresChangeListener(
            dsn_from_url(settings.DATABASE_URL),
            settings.CHANGE_FEED_CHANNEL,
            change_feed,
        )
        _change_listener.start()
        logger.info(f"Change feed: LISTEN on channel {settings.CHANGE_FEED_CHANNEL}")
    else:
        install_session_capture(SessionLocal, change_feed)
        logger.info("Change feed: in-process session capture")

@app.on_event("shutdown")
async def shutdown_event():
    global _change_listener
    if _change_listener is not None:
        _change_listener.stop()
        _change_listener = None
    logger.info("Server stopped")

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(AuthLoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(auth_router, prefix=f"{settings.API_V1_STR}/auth", tags=["authentication"])
app.include_router(user_router, prefix=f"{settings.API_V1_STR}/users", tags=["users"])
app.include_router(follows_router, prefix=f"{settings.API_V1_STR}/users", tags=["follows"])
app.include_router(posts_router, prefix=f"{settings.API_V1_STR}/posts", tags=["posts"])
app.include_router(likes_router, prefix=f"{settings.API_V1_STR}/posts", tags=["likes"])
app.include_router(comments_router, prefix=f"{settings.API_V1_STR}/posts/{{post_id}}/comments", tags=["comments"])
app.include_router(notifications_router, prefix=f"{settings.API_V1_STR}/notifications", tags=["notifications"])
app.include_router(admin_router, prefix=f"{settings.API_V1_STR}/admin", tags=["admin"])

@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.PROJECT_NAME}",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "documentation": "/docs" if settings.DEBUG else None,
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("townsquare.main:app", host="0.0.0.0", port=8000, reload=True)
