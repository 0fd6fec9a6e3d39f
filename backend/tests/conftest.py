"""Shared test fixtures for all test modules."""

import contextlib
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import promoplan.models  # noqa: F401
from promoplan.core import database as db_module
from promoplan.core.database import Base
from promoplan.models.coupon import Coupon, CouponType
from promoplan.models.shared import utc_now

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Headers the auth gateway forwards for a regular user and an administrator
USER_HEADERS = {"X-User-Id": "user-1", "X-User-Email": "user1@example.com", "X-User-Role": "user"}
ADMIN_HEADERS = {
    "X-User-Id": "admin-1",
    "X-User-Email": "admin@example.com",
    "X-User-Role": "admin",
}


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    yield
    with _test_engine.connect() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


def make_coupon(db: Session, **overrides: Any) -> Coupon:
    """Insert a coupon that is valid right now unless overridden."""
    now = utc_now()
    values: dict[str, Any] = {
        "code": "SAVE20",
        "description": "Twenty percent off the pro plan",
        "coupon_type": CouponType.PERCENTAGE.value,
        "value": Decimal("20"),
        "used_count": 0,
        "is_active": True,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
        "created_by": "admin@example.com",
    }
    values.update(overrides)
    coupon = Coupon(**values)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def at(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)
