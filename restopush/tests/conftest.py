import os
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

# CRITICAL: Set test configuration BEFORE importing any restopush modules
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "true"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["RESTAURANT_TIMEZONE"] = "Europe/Berlin"

from restopush.main import app
from restopush.database import Base
from restopush import models  # noqa: F401
import restopush.database as db_module
import restopush.dependencies as dependencies_module
import restopush.jobs.notification_cron as cron_job
from restopush.limits import limiter
from restopush.models.notification import Platform, PushToken, ScheduledNotification
from restopush.services.auth_service import create_access_token

BERLIN = ZoneInfo("Europe/Berlin")


def berlin(year, month, day, hour, minute=0):
    """Restaurant-local wall time as an aware UTC datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=BERLIN).astimezone(timezone.utc)


class FakePushGateway:
    """Records every batch; answers 'ok' for each message unless told otherwise."""

    def __init__(self, responder=None):
        self.calls = []
        self.responder = responder

    def send(self, messages):
        self.calls.append(list(messages))
        if self.responder is not None:
            return self.responder(messages)
        return [{"status": "ok", "id": f"ticket-{i}"} for i, _ in enumerate(messages)]

    @property
    def recipients(self):
        return [m["to"] for batch in self.calls for m in batch]

    def close(self):
        pass


@pytest.fixture(scope="session")
def test_engine():
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # share same in-memory DB across connections
    )


@pytest.fixture()
def db_session(test_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    # Fresh schema per test
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def patch_sessionlocal(monkeypatch, test_engine, db_session):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    monkeypatch.setattr(db_module, "engine", test_engine, raising=False)
    monkeypatch.setattr(db_module, "SessionLocal", TestingSessionLocal, raising=True)
    monkeypatch.setattr(dependencies_module, "SessionLocal", TestingSessionLocal, raising=True)
    monkeypatch.setattr(cron_job, "SessionLocal", TestingSessionLocal, raising=True)

    # Disable rate limiter globally for tests
    monkeypatch.setattr(limiter, "enabled", False, raising=False)
    yield


@pytest.fixture()
def now():
    # Wednesday afternoon, outside quiet hours
    return berlin(2026, 6, 3, 15)


@pytest.fixture()
def clock(now):
    return lambda: now


@pytest.fixture()
def gateway():
    return FakePushGateway()


@pytest.fixture()
def client(gateway, clock):
    app.dependency_overrides[dependencies_module.get_push_gateway] = lambda: gateway
    app.dependency_overrides[dependencies_module.get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def service_headers():
    token = create_access_token("service", "service_role", timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


def auth_headers_for(user_id, role="authenticated"):
    token = create_access_token(user_id, role, timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


def seed_token(db, user_id, token=None, platform=Platform.IOS, settings=None, is_active=True):
    entry = PushToken(
        user_id=user_id,
        token=token or f"ExponentPushToken[{user_id}-{platform.value}]",
        platform=platform,
        notification_settings=settings,
        is_active=is_active,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def seed_scheduled(db, scheduled_for, type="event_reminder", title="Event reminder!", body="Tomorrow!", **fields):
    fields.setdefault("data", {})
    fields.setdefault("target_audience", {"all": True})
    row = ScheduledNotification(
        type=type,
        title=title,
        body=body,
        scheduled_for=scheduled_for,
        **fields,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
