"""
Pytest configuration and fixtures for backend tests.

Provides shared fixtures for:
- Test database sessions
- In-memory gate cache
- Mocked Expo HTTP client
- Wired notification services
- Sample data factories
"""

import os
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ['NOTIFY_DB_URL'] = 'sqlite:///:memory:'
os.environ['NOTIFY_ENV'] = 'test'
os.environ['REDIS_URL'] = ''

from backend.src.models import (
    Base,
    DeviceToken,
    NotificationPreference,
    User,
    UserStatus,
)
from backend.src.services.expo_push_service import ExpoPushService
from backend.src.services.notification_scheduler_service import NotificationSchedulerService
from backend.src.services.notification_service import NotificationService
from backend.src.utils.notification_cache import InMemoryNotificationCache


EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
EXPO_RECEIPTS_URL = "https://exp.host/--/api/v2/push/getReceipts"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    from sqlalchemy import event

    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # Enable foreign key constraints for SQLite
    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute('pragma foreign_keys=ON')

    event.listen(engine, 'connect', _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope='function')
def test_db_session(test_db_engine):
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Utility Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_cache():
    """Create an in-memory gate cache for testing."""
    return InMemoryNotificationCache()


def make_response(status_code=200, payload=None, url=EXPO_PUSH_URL):
    """Build an httpx.Response bound to a request (as the client returns)."""
    return httpx.Response(
        status_code,
        json=payload if payload is not None else {},
        request=httpx.Request("POST", url),
    )


@pytest.fixture
def expo_client():
    """
    Mock httpx client that accepts every push message.

    Each message gets a unique ticket id ("ticket-1", "ticket-2", ...).
    Tests override post.side_effect / return_value for other behavior.
    """
    client = MagicMock(spec=httpx.Client)
    _counter = [0]

    def _post(url, json=None, timeout=None, **kwargs):
        tickets = []
        for _ in json or []:
            _counter[0] += 1
            tickets.append({"status": "ok", "id": f"ticket-{_counter[0]}"})
        return make_response(200, {"data": tickets}, url=url)

    client.post.side_effect = _post
    return client


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def push_service(test_db_session, expo_client):
    """ExpoPushService backed by the mock client."""
    return ExpoPushService(
        test_db_session,
        client=expo_client,
        push_url=EXPO_PUSH_URL,
        receipts_url=EXPO_RECEIPTS_URL,
    )


@pytest.fixture
def notification_service(test_db_session, test_cache, push_service):
    """Gatekeeper with a daily cap of 3."""
    return NotificationService(
        test_db_session,
        cache=test_cache,
        push_service=push_service,
        daily_cap=3,
    )


@pytest.fixture
def scheduler(test_db_session, notification_service):
    """Scheduler with the inactivity job enabled."""
    return NotificationSchedulerService(
        test_db_session,
        notification_service,
        batch_limit=100,
        inactivity_enabled=True,
    )


# ============================================================================
# Sample Data Factories
# ============================================================================

@pytest.fixture
def create_user(test_db_session):
    """Factory for creating test users."""
    _counter = [0]

    def _create(
        username=None,
        timezone_name="America/New_York",
        status=UserStatus.ACTIVE,
        last_active_at=None,
        current_streak=0,
    ):
        _counter[0] += 1
        user = User(
            username=username or f"user{_counter[0]}",
            timezone=timezone_name,
            status=status,
            last_active_at=last_active_at,
            current_streak=current_streak,
        )
        test_db_session.add(user)
        test_db_session.commit()
        test_db_session.refresh(user)
        return user
    return _create


@pytest.fixture
def test_user(create_user):
    """A default active user in New York."""
    return create_user(username="testuser")


@pytest.fixture
def create_device_token(test_db_session):
    """Factory for creating Expo device tokens."""
    _counter = [0]

    def _create(user, token=None, is_active=True, last_used_at=None):
        _counter[0] += 1
        device = DeviceToken(
            user_id=user.id,
            token=token or f"ExponentPushToken[device-{_counter[0]}]",
            platform="ios",
            is_active=is_active,
            last_used_at=last_used_at or datetime.utcnow() - timedelta(minutes=_counter[0]),
        )
        test_db_session.add(device)
        test_db_session.commit()
        test_db_session.refresh(device)
        return device
    return _create


@pytest.fixture
def create_preference(test_db_session):
    """Factory for creating notification preference rows."""
    def _create(user, **overrides):
        preference = NotificationPreference(user_id=user.id, **overrides)
        test_db_session.add(preference)
        test_db_session.commit()
        test_db_session.refresh(preference)
        return preference
    return _create


@pytest.fixture
def reachable_user(test_user, create_device_token):
    """A New York user with one active device."""
    create_device_token(test_user)
    return test_user
