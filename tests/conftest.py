"""
Shared pytest fixtures.

Every test runs against a fresh in-memory SQLite schema. Tokens are minted
with the same secret the JWT identity resolver verifies.
"""
import os
import uuid
from datetime import datetime, timedelta

# Must be set before any townsquare import reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_PROVIDER"] = "jwt"
os.environ["AUTH_JWT_SECRET"] = "test-secret-not-real"
os.environ["CHANGE_FEED_BACKEND"] = "session"
os.environ["SUBSCRIBER_RESYNC_SECONDS"] = "0.2"

import pytest
from fastapi.testclient import TestClient

from townsquare.core.security import create_access_token
from townsquare.db.base import Base
from townsquare.db.session import SessionLocal, engine
from townsquare.main import app
from townsquare.modules.notifications.realtime.capture import install_session_capture
from townsquare.modules.notifications.realtime.change_feed import ChangeFeed, change_feed
from townsquare.modules.posts.models.post import Post
from townsquare.modules.user_management.models.user import User, UserRole


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db):
    def _make_user(username: str, role: UserRole = UserRole.USER, is_active: bool = True, **fields) -> User:
        user = User(
            id=fields.pop("id", str(uuid.uuid4())),
            email=fields.pop("email", f"{username}@example.com"),
            username=username,
            role=role,
            is_active=is_active,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_post(db):
    counter = {"n": 0}

    def _make_post(author: User, content: str = "hello town", **fields) -> Post:
        # Distinct timestamps keep newest-first ordering deterministic
        counter["n"] += 1
        post = Post(
            id=str(uuid.uuid4()),
            author_id=author.id,
            content=content,
            like_count=0,
            comment_count=0,
            created_at=fields.pop("created_at", datetime(2026, 1, 1) + timedelta(minutes=counter["n"])),
            **fields,
        )
        db.add(post)
        db.commit()
        db.refresh(post)
        return post
    return _make_post


@pytest.fixture
def auth_headers():
    def _auth_headers(user_or_id) -> dict:
        user_id = getattr(user_or_id, "id", user_or_id)
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _auth_headers


class RecordingFeed(ChangeFeed):
    """Collects published events instead of delivering them"""

    def __init__(self):
        self.events = []

    def publish(self, event) -> int:
        self.events.append(event)
        return 1


@pytest.fixture
def recording_feed():
    feed = RecordingFeed()
    install_session_capture(SessionLocal, feed)
    yield feed
    install_session_capture(SessionLocal, change_feed)
