"""Shared test fixtures for backend tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from roomchat.core.config import settings
from roomchat.core.database import get_session
from roomchat.models.conversation import Conversation, ConversationParticipant, ConversationType, Message
from roomchat.models.profile import Listing, Profile

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

VIEWER = "viewer-0001"
HOST = "host-0001"
STRANGER = "stranger-0001"


def get_test_session():
    with Session(test_engine) as session:
        yield session


def make_token(user_id: str, **overrides) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + timedelta(hours=1),
    }
    claims.update(overrides)
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def seed_listing(listing_id="L123", host_id=HOST, title="Room in Osu") -> str:
    with Session(test_engine) as session:
        session.add(Listing(id=listing_id, user_id=host_id, title=title))
        session.commit()
    return listing_id


def seed_profile(user_id: str, full_name: str | None = None, avatar_url: str | None = None) -> None:
    with Session(test_engine) as session:
        session.add(Profile(id=user_id, full_name=full_name, avatar_url=avatar_url))
        session.commit()


def seed_conversation(members, conversation_type=ConversationType.user_host, listing_id=None, created_at=None, messages=None):
    """Insert a conversation, its participants and (sender, body, created_at) messages directly."""
    with Session(test_engine) as session:
        conv = Conversation(type=conversation_type, listing_id=listing_id)
        if created_at is not None:
            conv.created_at = created_at
        session.add(conv)
        session.flush()
        for member in members:
            session.add(ConversationParticipant(conversation_id=conv.id, user_id=member))
        for sender, body, at in messages or []:
            session.add(Message(conversation_id=conv.id, sender_id=sender, body=body, created_at=at))
        session.commit()
        return conv.id


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import roomchat.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session():
    with Session(test_engine) as s:
        yield s


@pytest.fixture
def client(tmp_path):
    """FastAPI TestClient with the database and storage swapped for test doubles."""
    with (
        patch("roomchat.core.database.engine", test_engine),
        patch("roomchat.api.chat.engine", test_engine),
        patch("roomchat.api.inbox.engine", test_engine),
        patch.object(settings, "storage_dir", tmp_path / "storage"),
    ):
        from roomchat.main import app, storage_files

        # Use FastAPI's dependency override for get_session
        app.dependency_overrides[get_session] = get_test_session

        storage_dir = tmp_path / "storage"
        storage_files.directory = storage_dir
        storage_files.all_directories = [storage_dir]
        storage_files.config_checked = False

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
