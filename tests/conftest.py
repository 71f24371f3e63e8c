import os

# settings are cached on first import; point them at SQLite before anything imports app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings
from app.core.token_encryption import encrypt_token
from app.db.base import Base, make_engine
from app.db.models import (
    MediaFile,
    Member,
    QueueSlot,
    SocialConnection,
    SocialProfile,
    User,
    Workspace,
)
from app.dependencies import get_db, get_job_dispatcher
from app.main import app
from app.services.job_dispatcher import InMemoryJobDispatcher
from app.services.platform_publish import PlatformPublishError, PublisherRegistry, PublishResult
from app.services.publishing import PublishingOrchestrator


class FakePublisher:
    """Records every call; returns scripted ids or fails on demand."""

    def __init__(self, platform: str, ids=None, fail: bool = False):
        self.platform = platform
        self.ids = list(ids or [])
        self.fail = fail
        self.calls = []

    def publish(self, credentials, content, media, target):
        self.calls.append(
            {"credentials": credentials, "content": content, "media": list(media), "target": target}
        )
        if self.fail:
            raise PlatformPublishError(self.platform, "rejected by platform", 400)
        post_id = self.ids.pop(0) if self.ids else f"{self.platform.lower()}-{len(self.calls)}"
        return PublishResult(platform_post_id=post_id)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def db_engine():
    engine = make_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(
        bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False
    )
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def author(db_session):
    user = User(id=uuid.uuid4(), email="author@example.com", name="Author")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def reviewer(db_session, workspace):
    user = User(id=uuid.uuid4(), email="reviewer@example.com", name="Reviewer")
    db_session.add(user)
    db_session.add(Member(id=uuid.uuid4(), workspace_id=workspace.id, user_id=user.id, role="member"))
    db_session.commit()
    return user


@pytest.fixture
def workspace(db_session, author):
    ws = Workspace(id=uuid.uuid4(), owner_id=author.id, name="Acme", plan="BUSINESS", timezone="UTC")
    db_session.add(ws)
    db_session.add(Member(id=uuid.uuid4(), workspace_id=ws.id, user_id=author.id, role="owner"))
    db_session.commit()
    return ws


def _add_profile(db_session, workspace, platform: str, platform_id: str) -> SocialProfile:
    connection = SocialConnection(
        id=uuid.uuid4(),
        workspace_id=workspace.id,
        platform=platform,
        access_token=encrypt_token(f"token-{platform.lower()}"),
        refresh_token=encrypt_token(f"secret-{platform.lower()}"),
    )
    profile = SocialProfile(
        id=uuid.uuid4(),
        workspace_id=workspace.id,
        connection_id=connection.id,
        platform=platform,
        platform_id=platform_id,
        name=f"{platform.title()} profile",
        username=platform.lower(),
        type="PROFILE",
    )
    db_session.add_all([connection, profile])
    db_session.commit()
    return profile


@pytest.fixture
def profiles(db_session, workspace):
    return {
        "TWITTER": _add_profile(db_session, workspace, "TWITTER", "tw-user"),
        "LINKEDIN": _add_profile(db_session, workspace, "LINKEDIN", "urn:li:person:1"),
        "FACEBOOK": _add_profile(db_session, workspace, "FACEBOOK", "fb-page"),
        "THREADS": _add_profile(db_session, workspace, "THREADS", "th-user"),
    }


@pytest.fixture
def media_file(db_session, workspace):
    media = MediaFile(
        id=uuid.uuid4(),
        workspace_id=workspace.id,
        url="https://cdn.example.com/a.jpg",
        mime_type="image/jpeg",
        width=1080,
        height=1080,
        size=12345,
    )
    db_session.add(media)
    db_session.commit()
    return media


@pytest.fixture
def daily_slots(db_session, workspace):
    """09:00 and 17:00 UTC every day of the week."""
    slots = []
    for day in range(1, 8):
        for t in ("09:00", "17:00"):
            slots.append(
                QueueSlot(id=uuid.uuid4(), workspace_id=workspace.id, day_of_week=day, time=t, capacity=1)
            )
    db_session.add_all(slots)
    db_session.commit()
    return slots


@pytest.fixture
def publishers():
    return {
        name: FakePublisher(name)
        for name in ("TWITTER", "LINKEDIN", "FACEBOOK", "INSTAGRAM", "THREADS")
    }


@pytest.fixture
def registry(publishers):
    return PublisherRegistry(list(publishers.values()))


@pytest.fixture
def dispatcher(db_session, registry):
    def handler(post_id):
        return PublishingOrchestrator(db_session, registry, max_workers=4).run(post_id)

    return InMemoryJobDispatcher(handler, max_attempts=3, backoff_seconds=5)


@pytest.fixture
def auth_headers(author, workspace):
    settings = get_settings()
    token = jwt.encode({"sub": str(author.id)}, settings.secret_key, algorithm=settings.algorithm)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_session, dispatcher):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def in_one_hour():
    return (utcnow() + timedelta(hours=1)).replace(microsecond=0)
