"""Shared pytest fixtures for test suite"""
import asyncio
import os
import sys
from pathlib import Path
from typing import Generator, List, Optional
from unittest.mock import patch

# Configure the app for tests before anything imports settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["EMAIL_FROM_ADDRESS"] = "noreply@example.com"
os.environ.pop("RESEND_WEBHOOK_SECRET", None)

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from mailrelay.api.deps import get_adapter_registry
from mailrelay.db import redis as redis_module
from mailrelay.db.email_log_store import EmailLogStore
from mailrelay.db.session import engine_options, get_db
from mailrelay.main import app
from mailrelay.models import Base
from mailrelay.services.email import (
    AdapterRegistry,
    BaseEmailAdapter,
    EmailMessage,
    EmailService,
    SendResult,
)


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine (StaticPool for in-memory database)
test_engine = create_engine(TEST_DATABASE_URL, **engine_options(TEST_DATABASE_URL))

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_USER_ID = "user_123"
TEST_SESSION_ID = "test-session"
DEFAULT_FROM = "noreply@example.com"

# Resend test address - use it in tests to avoid sending to real inboxes
# See: https://resend.com/docs/dashboard/emails/send-test-emails
RESEND_TEST_DELIVERED = "delivered@resend.dev"


class FakeEmailAdapter(BaseEmailAdapter):
    """In-memory adapter: records messages, succeeds unless told otherwise

    ``fail_with`` makes every send return a provider rejection; subjects in
    ``raise_for`` raise a transport error instead.
    """

    def __init__(self, name: str = "resend", fail_with: Optional[str] = None, raise_for=()):
        super().__init__(name)
        self.sent: List[EmailMessage] = []
        self.fail_with = fail_with
        self.raise_for = set(raise_for)
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0
        # Overrides the returned provider id (e.g. to force duplicates)
        self.provider_id: Optional[str] = None

    async def send_email(self, message: EmailMessage) -> SendResult:
        self.sent.append(message)
        self.calls += 1
        call_number = self.calls
        if message.subject in self.raise_for:
            raise ConnectionError(f"connection reset sending '{message.subject}'")

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1

        if self.fail_with:
            return SendResult.failure(self.fail_with)
        return SendResult.ok(self.provider_id or f"{self.name}_msg_{call_number}")


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def store(db_session: Session) -> EmailLogStore:
    return EmailLogStore(db_session)


@pytest.fixture(scope="function")
def fake_adapter() -> FakeEmailAdapter:
    return FakeEmailAdapter("resend")


@pytest.fixture(scope="function")
def registry(fake_adapter: FakeEmailAdapter) -> AdapterRegistry:
    return AdapterRegistry([fake_adapter])


@pytest.fixture(scope="function")
def email_service(store: EmailLogStore, registry: AdapterRegistry) -> EmailService:
    return EmailService(
        store=store,
        registry=registry,
        default_provider="resend",
        from_address=DEFAULT_FROM,
        base_url="https://app.example.com"
    )


@pytest.fixture(scope="function")
def mock_redis():
    """Mock Redis client using fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def client(db_session: Session, registry: AdapterRegistry, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, fake adapters and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_adapter_registry] = lambda: registry

    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, mock_redis) -> TestClient:
    """Client carrying a session cookie for TEST_USER_ID"""
    redis_module.set_session(TEST_SESSION_ID, TEST_USER_ID)
    client.cookies.set("session_id", TEST_SESSION_ID)
    return client


@pytest.fixture(scope="function")
def make_log_entry(store: EmailLogStore):
    """Factory for email log entries as they look after a successful send"""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = {
            "id": f"email_test_{counter['n']}",
            "provider_id": f"re_msg_{counter['n']}",
            "from_address": DEFAULT_FROM,
            "to_address": RESEND_TEST_DELIVERED,
            "subject": "Test email",
            "content": "<p>Test</p>",
            "content_type": "html",
            "status": "sent",
            "provider": "resend",
            "user_id": TEST_USER_ID,
        }
        values.update(overrides)
        return store.create(values)

    return _make
