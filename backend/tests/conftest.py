"""Shared test fixtures.

Settings are read at import time, so the environment is set before any
pricelab module is imported. The database file lives in a temporary
directory that is removed when the session ends.
"""
import os
import shutil
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="pricelab-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from pricelab.database import SessionLocal, engine, Base
from pricelab.middleware.auth import create_user_with_api_key
from pricelab.models import Listing, PriceHistory
from fakes import FakeRedis


@pytest.fixture(scope="session", autouse=True)
def database_directory():
    yield _DB_DIR
    engine.dispose()
    shutil.rmtree(_DB_DIR, ignore_errors=True)


@pytest.fixture
def db():
    """Create test database session."""
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()

    yield session

    # Cleanup
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db: Session):
    return create_user_with_api_key(db, "owner-key")


@pytest.fixture
def other_user(db: Session):
    return create_user_with_api_key(db, "other-key")


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def make_listing(db: Session):
    """Factory for active listings owned by a user."""
    created = []

    def _make(user, listing_id, price=100.0, category_id="sneakers", brand="nike",
              views=100, watchers=10, status="active", competitor_prices=None, age_days=0):
        listing = Listing(
            id=listing_id,
            user_id=user.id,
            category_id=category_id,
            brand=brand,
            status=status,
            current_price=price,
            original_price=price,
            views=views,
            watchers=watchers,
            competitor_prices=competitor_prices or [],
            created_at=datetime.utcnow() - timedelta(days=age_days, seconds=len(created)),
        )
        db.add(listing)
        db.add(PriceHistory(listing_id=listing_id, new_price=price))
        db.commit()
        created.append(listing)
        return listing

    return _make
