"""
Test fixtures for challenge-hub tests.

Provides an in-memory database, a TestClient wired to it and a small
factory for clients, challenges, assignments and events.
"""

import os

# Settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key-for-access-grants-0123456789"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["COOKIE_SECURE"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import challenge_hub.models  # noqa: F401  (register tables)
from challenge_hub.core.context import clear_context
from challenge_hub.core.security import get_password_hash
from challenge_hub.core.typing import utc_now
from challenge_hub.models import (
    AnalyticsEvent,
    Assignment,
    AssignmentUsage,
    Challenge,
    Client,
    Sprint,
)

TEST_DATABASE_URL = "sqlite:///:memory:"

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


@pytest.fixture(autouse=True)
def reset_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(test_engine):
    """Create test client with test database."""
    from challenge_hub.db import get_optional_session, get_session
    from challenge_hub.main import app

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_optional_session] = override_get_session

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return dict(ADMIN_HEADERS)


class TestDataFactory:
    """Builds and persists content rows with sensible defaults."""

    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def client(self, name: str = "Acme", **fields) -> Client:
        return self._save(Client(name=name, **fields))

    def challenge(self, client: Client, slug: Optional[str] = None, **fields) -> Challenge:
        fields.setdefault("internal_name", "Onboarding")
        if slug:
            fields["slug"] = slug
        return self._save(Challenge(client_id=client.id, **fields))

    def assignment(self, slug: Optional[str] = None, password: Optional[str] = None, **fields) -> Assignment:
        fields.setdefault("internal_title", "Assignment")
        if slug:
            fields["slug"] = slug
        if password:
            fields["password_hash"] = get_password_hash(password)
        return self._save(Assignment(**fields))

    def sprint(self, challenge: Challenge, password: Optional[str] = None, **fields) -> Sprint:
        fields.setdefault("name", "Sprint 1")
        if password:
            fields["password_hash"] = get_password_hash(password)
        return self._save(Sprint(challenge_id=challenge.id, **fields))

    def usage(self, challenge: Challenge, assignment: Assignment, **fields) -> AssignmentUsage:
        return self._save(AssignmentUsage(challenge_id=challenge.id, assignment_id=assignment.id, **fields))

    def event(
        self,
        challenge: Challenge,
        event_type: str = "challenge_view",
        assignment: Optional[Assignment] = None,
        session_id: str = "session-1",
        created_at: Optional[datetime] = None,
        metadata: Optional[dict] = None,
    ) -> AnalyticsEvent:
        return self._save(
            AnalyticsEvent(
                event_type=event_type,
                client_id=challenge.client_id,
                challenge_id=challenge.id,
                assignment_id=assignment.id if assignment else None,
                session_id=session_id,
                event_metadata=metadata,
                created_at=created_at or utc_now(),
            )
        )


@pytest.fixture
def factory(test_session: Session) -> TestDataFactory:
    return TestDataFactory(test_session)


@pytest.fixture
def published(factory: TestDataFactory) -> dict:
    """
    A client with one challenge holding three released assignments,
    one scheduled assignment and one hidden assignment.
    """
    acme = factory.client("Acme", logo_url="https://cdn.example.com/acme.png")
    challenge = factory.challenge(acme, slug="onboarding", public_title="Welcome", show_public_title=True)

    video = factory.assignment(
        slug="intro-video",
        public_title="Intro",
        instructions="Watch the **video**.",
        media_url="https://youtu.be/dQw4w9WgXcQ",
    )
    reading = factory.assignment(slug="reading", content_html="<p>Read this</p>")
    locked = factory.assignment(slug="locked", instructions="Secret task", password="Open Sesame")
    later = factory.assignment(slug="later", instructions="Next week")
    hidden = factory.assignment(slug="hidden", instructions="Draft")

    factory.usage(challenge, video, position=0, label="Day 1")
    factory.usage(challenge, reading, position=1)
    factory.usage(challenge, locked, position=2)
    factory.usage(challenge, later, position=3, release_at=utc_now() + timedelta(days=3))
    factory.usage(challenge, hidden, position=4, is_visible=False)

    return {
        "client": acme,
        "challenge": challenge,
        "video": video,
        "reading": reading,
        "locked": locked,
        "later": later,
        "hidden": hidden,
    }
