"""Pytest configuration and fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

# Set test environment before any settings are cached
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-for-ci")
os.environ.setdefault("PHONE_HASH_KEY", "test-phone-hash-key")
os.environ.setdefault("PHONE_ENCRYPTION_KEY", "0f" * 32)

from core.auth import create_access_token
from core.db import Base
from core.models import Deal, DealStatus, Property, QualificationRule, User


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

PHONE = "(225) 555-0100"
OTHER_PHONE = "(225) 555-0199"


@pytest.fixture(scope="session")
def engine():
    """Create a test database engine."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


@pytest.fixture(scope="session")
def tables(engine):
    """Create all tables for testing."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(engine, tables) -> Session:
    """
    Returns a SQLAlchemy session for testing.

    Each test gets a fresh transaction that is rolled back after the test.
    """
    connection = engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(autoflush=False, bind=connection)
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def user(db_session) -> User:
    user = User(email="buyer@example.com", external_id="idp|buyer", is_active=True)
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture
def other_user(db_session) -> User:
    user = User(email="other@example.com", external_id="idp|other", is_active=True)
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture
def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
def sample_property(db_session) -> Property:
    """A distressed single-family property."""
    prop = Property(
        address="456 Oak St",
        city="Baton Rouge",
        state="LA",
        zip_code="70808",
        property_type="single_family",
        owner_name="John Doe",
        estimated_value=200000.0,
        last_sale_price=150000.0,
        tax_assessed_value=180000.0,
        equity_percent=55.0,
        annual_property_tax=2400.0,
        year_built=1995,
        square_footage=1600,
        unit_count=1,
        owner_occupied=False,
        distress_signals={"foreclosure": True, "vacant": False},
        raw_data={"mortgage": {"rate": 3.1}, "listing": {"status": "off_market"}},
    )
    db_session.add(prop)
    db_session.flush()
    return prop


@pytest.fixture
def deal(db_session, user, sample_property) -> Deal:
    deal = Deal(
        user_id=user.id,
        property_id=sample_property.id,
        title=sample_property.address,
        status=DealStatus.NEW.value,
        version=1,
    )
    db_session.add(deal)
    db_session.flush()
    return deal


@pytest.fixture
def make_rule(db_session, user):
    """Factory persisting a QualificationRule for the default user."""

    def _make(name, rule_type, field_name, operator, value, weight=0, enabled=True, rule_subtype=None):
        rule = QualificationRule(
            user_id=user.id,
            name=name,
            rule_type=rule_type,
            field_name=field_name,
            operator=operator,
            value=value,
            weight=weight,
            enabled=enabled,
            rule_subtype=rule_subtype,
        )
        db_session.add(rule)
        db_session.flush()
        return rule

    return _make


@pytest.fixture
def client(db_session):
    """TestClient whose request sessions are the test's rolled-back session."""
    from fastapi.testclient import TestClient

    from api.app import app
    from api.deps import get_db, get_readonly_db, get_runner
    from services.background_jobs import InMemoryJobRunner

    runner = InMemoryJobRunner()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_readonly_db] = override_get_db
    app.dependency_overrides[get_runner] = lambda: runner
    with TestClient(app) as c:
        c.runner = runner
        yield c
    app.dependency_overrides.clear()
