"""
Pytest configuration and fixtures

Tests run against an in-memory sqlite database. Every test gets freshly
created tables, so nothing written in one test is visible to another.
"""
import pytest
import sys
import os
from datetime import date, datetime, timezone

# Point the app at sqlite before core.database builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_CREATE_TABLES", "false")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.database import Base  # noqa: E402
from models import Activity, Athlete, RaceResult  # noqa: E402


@pytest.fixture(scope="session")
def test_engine():
    # StaticPool: one shared connection, so the in-memory database is visible
    # from the TestClient's worker threads too.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine):
    """Session on a freshly created schema; tables are dropped afterwards."""
    Base.metadata.create_all(bind=test_engine)
    TestingSession = sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def test_athlete(db_session):
    athlete = Athlete(
        display_name="Test Athlete",
        birthdate=date(1990, 1, 1),
        sex="M",
        resting_hr=50,
        max_hr=190,
    )
    db_session.add(athlete)
    db_session.commit()
    db_session.refresh(athlete)
    return athlete


@pytest.fixture
def sample_vdot():
    """Sample VDOT value for testing"""
    return 50.0


@pytest.fixture
def sample_race_times():
    """Sample race times for testing"""
    return {
        "5k_20min": (20 * 60, 5000),
        "marathon_3hr": (3 * 3600, 42195),
        "half_marathon_90min": (90 * 60, 21097.5),
        "one_mile_533": (5 * 60 + 33, 1609.34),
    }


@pytest.fixture
def raced_athlete(db_session, test_athlete):
    """test_athlete with an all-out 20:00 5K on 2024-06-20, linked to its activity."""
    activity = Activity(
        athlete_id=test_athlete.id,
        name="Summer 5K",
        start_time=datetime(2024, 6, 20, 8, 0, tzinfo=timezone.utc),
        duration_s=1200,
        distance_m=5000,
        avg_hr=178,
        max_hr=188,
        workout_type="race",
    )
    db_session.add(activity)
    db_session.flush()
    db_session.add(RaceResult(
        athlete_id=test_athlete.id,
        activity_id=activity.id,
        name="Summer 5K",
        race_date=date(2024, 6, 20),
        distance_meters=5000,
        finish_time_seconds=1200,
        effort_level="all_out",
    ))
    db_session.commit()
    return test_athlete
