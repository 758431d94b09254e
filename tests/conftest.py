"""
Shared test fixtures: in-memory SQLite database and record factories.
"""
import itertools
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.gridrisk.db.base import Base, import_all_models
from src.gridrisk.db.models import AlertHistory, DistrictStat, Profile, ShapDriver, Unit


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_all_models()
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(engine):
    """Database session bound to the in-memory engine."""
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()

    yield session

    session.close()


@pytest.fixture
def make_unit(test_db):
    """Factory inserting units with sensible defaults."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        values = {
            "urn": f"TN{n:09d}",
            "name": f"Unit {n}",
            "district": "Chennai",
            "service_no": f"SV{n:09d}",
            "risk_score": 30.0,
            "tier": "GREEN",
            "arrears": 1000.0,
            "disconnect_flag": False,
            "last_updated": datetime.now(timezone.utc),
        }
        values.update(overrides)
        unit = Unit(**values)
        test_db.add(unit)
        test_db.flush()
        return unit

    return _make


@pytest.fixture
def make_profile(test_db):
    """Factory inserting dashboard profiles."""

    def _make(profile_id, **overrides):
        values = {
            "id": profile_id,
            "display_name": profile_id.title(),
            "email": f"{profile_id}@example.com",
            "role": "viewer",
            "district_access": [],
            "email_notifications": True,
        }
        values.update(overrides)
        profile = Profile(**values)
        test_db.add(profile)
        test_db.flush()
        return profile

    return _make


@pytest.fixture
def district_stats(test_db):
    """SLA compliance for the common test districts."""
    rows = [
        DistrictStat(name="Chennai", sla_compliance=88.5),
        DistrictStat(name="Coimbatore", sla_compliance=95.0),
        DistrictStat(name="Salem", sla_compliance=None),
    ]
    test_db.add_all(rows)
    test_db.flush()
    return rows


@pytest.fixture
def add_details(test_db):
    """Attach risk drivers and alert history to a unit."""

    def _add(unit):
        unit.shap_drivers = [
            ShapDriver(feature="Payment History", impact=0.35, value="3 months overdue", position=0),
            ShapDriver(feature="Arrears Amount", impact=0.25, value="45,000", position=1),
        ]
        unit.alert_history = [
            AlertHistory(alert_date=date(2024, 1, day), type=f"Alert {day}", severity="RED")
            for day in (1, 8, 15, 22)
        ]
        test_db.flush()
        return unit

    return _add
