"""Root conftest for all tests.

Every test gets its own in-memory SQLite database with the same savepoint
handling the application engine uses.
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coachsync.config.settings import settings
from coachsync.db.models import Athlete, Base, ProviderConnection
from coachsync.db.session import create_db_engine

FIXED_NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def strava_credentials(monkeypatch):
    monkeypatch.setattr(settings, "strava_client_id", "client-123")
    monkeypatch.setattr(settings, "strava_client_secret", "secret-456")


def add_athlete(
    session,
    athlete_id: str,
    *,
    timezone: str = "UTC",
    coach_id: str | None = None,
    connected: bool = True,
    last_sync_at: datetime | None = None,
    expires_at: datetime | None = None,
    provider_athlete_id: str | None = None,
) -> Athlete:
    """Add an athlete (and by default a Strava connection) without committing."""
    athlete = Athlete(id=athlete_id, timezone=timezone, coach_id=coach_id)
    session.add(athlete)
    if connected:
        session.add(
            ProviderConnection(
                id=f"conn-{athlete_id}",
                athlete_id=athlete_id,
                provider="strava",
                provider_athlete_id=provider_athlete_id or f"strava-{athlete_id}",
                access_token=f"token-{athlete_id}",
                refresh_token=f"refresh-{athlete_id}",
                expires_at=expires_at or FIXED_NOW + timedelta(hours=6),
                scope="activity:read_all",
                last_sync_at=last_sync_at,
            )
        )
    session.flush()
    return athlete


def raw_strava_activity(activity_id="999", *, start="2024-03-01T21:00:00Z", elapsed=1800, sport_type="Run", **extra):
    """Minimal raw Strava summary activity."""
    raw = {
        "id": activity_id,
        "name": "Morning Run",
        "sport_type": sport_type,
        "type": sport_type,
        "start_date": start,
        "elapsed_time": elapsed,
        "moving_time": elapsed,
        "distance": 5000.0,
    }
    raw.update(extra)
    return raw


@pytest.fixture
def make_athlete(db_session):
    def _make(athlete_id: str, **kwargs) -> Athlete:
        return add_athlete(db_session, athlete_id, **kwargs)

    return _make


@pytest.fixture
def make_raw_activity():
    return raw_strava_activity
