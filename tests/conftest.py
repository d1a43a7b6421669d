"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database (StaticPool keeps the
single connection alive) and a controllable clock.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import recovery.models  # noqa: F401  (registers tables on Base.metadata)
from recovery.db.base import Base
from recovery.main import create_app
from recovery.services.reconciliation import ReconciliationService

# A Wednesday afternoon.
FIXED_NOW = datetime(2026, 3, 18, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now = self.now + timedelta(days=days, hours=hours)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture()
def service(session_factory, clock):
    return ReconciliationService(session_factory, clock=clock)


@pytest.fixture()
def client(session_factory):
    app = create_app(session_factory=session_factory)
    with TestClient(app) as c:
        yield c
