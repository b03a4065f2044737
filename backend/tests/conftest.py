"""
Shared test fixtures for Joinery BOM tests

Provides database setup, client creation, and user fixtures
"""
import os

# Point the application engine at SQLite before app modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.main import app  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import get_db  # noqa: E402
from tests.factories import (  # noqa: E402
    create_test_item,
    create_test_unit,
    create_test_user,
    reset_sequences,
)


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from app.models import (  # noqa: F401
        Unit, InventoryItem, User, BOM, BOMComponent, BOMOperation, AuditLog
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def db(db_session):
    """Short alias used by most tests"""
    return db_session


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def admin_user(db_session):
    return create_test_user(db_session, username="admin", role="admin")


@pytest.fixture
def manager_user(db_session):
    return create_test_user(db_session, username="manager", role="manager")


@pytest.fixture
def regular_user(db_session):
    """Shop-floor user who creates draft BOMs"""
    return create_test_user(db_session, username="estimator", role="user")


@pytest.fixture
def other_user(db_session):
    return create_test_user(db_session, username="other", role="user")


@pytest.fixture
def admin_headers(admin_user):
    return {"X-User-Id": str(admin_user.id)}


@pytest.fixture
def manager_headers(manager_user):
    return {"X-User-Id": str(manager_user.id)}


@pytest.fixture
def user_headers(regular_user):
    return {"X-User-Id": str(regular_user.id)}


@pytest.fixture
def other_headers(other_user):
    return {"X-User-Id": str(other_user.id)}


# =============================================================================
# Inventory
# =============================================================================

@pytest.fixture
def each_unit(db_session):
    return create_test_unit(db_session, name="Each", abbreviation="EA")


@pytest.fixture
def drawer_slide(db_session, each_unit):
    """$5.00 drawer slide"""
    return create_test_item(
        db_session, sku="HW-SLIDE-18", name="18in Drawer Slide", unit_price="5.00", unit=each_unit
    )


@pytest.fixture
def plywood_panel(db_session, each_unit):
    """$20.00 cabinet side panel"""
    return create_test_item(
        db_session, sku="PLY-SIDE-34", name="3/4 Plywood Side Panel", unit_price="20.00", unit=each_unit
    )
