"""Pytest fixtures and configuration for foodshare tests."""

import pytest
from datetime import date, datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from unittest.mock import patch

from foodshare.database.database import Base
from foodshare.database.donation_repository import DonationRepository
from foodshare.database.notification_repository import NotificationRepository
from foodshare.database.user_repository import UserRepository
from foodshare.engine.lifecycle import DonationLifecycle
from foodshare.engine.notifications import NotificationFeed
from foodshare.engine.session import SessionContext
from foodshare.models.user import Identity, Role
from foodshare.realtime.change_feed import ChangeFeed


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Seeded profiles: (identity key, email, name, role, organization)
SEED_PROFILES = {
    "donor": ("donor-a", "asha@example.com", "Asha", Role.DONOR, None),
    "other_donor": ("donor-c", "chen@example.com", "Chen", Role.DONOR, None),
    "ngo": ("ngo-b", "bank@example.org", "City Food Bank", Role.NGO, "City Food Bank"),
    "admin": ("admin-1", "admin@example.com", "Admin", Role.ADMIN, None),
}


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test,
    seeded with one profile per entry of SEED_PROFILES.
    """
    from foodshare.database.models import UserDB

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    now = datetime.utcnow()
    for identity_key, email, name, role, organization in SEED_PROFILES.values():
        session.add(UserDB(
            id=identity_key,
            email=email,
            name=name,
            role=role.value,
            organization_name=organization,
            created_at=now,
            updated_at=now,
        ))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def feed():
    """A private change feed so tests never see each other's events."""
    return ChangeFeed()


@pytest.fixture
def user_repository(db_session: Session, feed):
    return UserRepository(db_session, feed)


@pytest.fixture
def donation_repository(db_session: Session, feed):
    return DonationRepository(db_session, feed)


@pytest.fixture
def notification_repository(db_session: Session, feed):
    return NotificationRepository(db_session, feed)


@pytest.fixture
def lifecycle(db_session: Session, feed):
    return DonationLifecycle.for_db(db_session, feed)


@pytest.fixture
def notification_feed(notification_repository, user_repository):
    return NotificationFeed(notification_repository, user_repository)


def _session_for(key: str) -> SessionContext:
    identity_key, email, name, role, _ = SEED_PROFILES[key]
    return SessionContext(identity_key=identity_key, email=email, name=name, role=role)


@pytest.fixture
def donor_session():
    return _session_for("donor")


@pytest.fixture
def other_donor_session():
    return _session_for("other_donor")


@pytest.fixture
def ngo_session():
    return _session_for("ngo")


@pytest.fixture
def admin_session():
    return _session_for("admin")


@pytest.fixture
def donation_fields():
    """Valid create-donation fields that tests can override."""
    return {
        "food_item": "Bread",
        "category": "Grains & Bread",
        "quantity": "10 loaves",
        "expiry_date": date.today() + timedelta(days=2),
        "pickup_location": "12 Main St",
        "contact_info": "555-0100",
        "notes": None,
    }


@pytest.fixture
def make_donation(lifecycle, donor_session, donation_fields):
    """Factory creating a donation through the lifecycle engine."""
    def _make(session=None, **overrides):
        return lifecycle.create(session or donor_session, **{**donation_fields, **overrides})
    return _make


class IdentitySwitch:
    """Which identity the API test client is signed in as (None = signed out)."""

    def __init__(self):
        self.identity = None

    def act_as(self, key):
        if key is None:
            self.identity = None
            return
        identity_key, email, _, _, _ = SEED_PROFILES[key]
        self.identity = Identity(id=identity_key, email=email)


@pytest.fixture
def current_identity():
    switch = IdentitySwitch()
    switch.act_as("donor")
    return switch


@pytest.fixture
def test_client(db_session: Session, feed, current_identity):
    """Create a FastAPI test client with overridden database, change feed and authentication."""
    from foodshare.api.app import app
    from foodshare.database.database import get_db
    from foodshare.auth.dependencies import get_current_identity
    from foodshare.realtime.change_feed import get_change_feed

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_identity] = lambda: current_identity.identity
    app.dependency_overrides[get_change_feed] = lambda: feed

    with patch("foodshare.api.app.init_db"), TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
