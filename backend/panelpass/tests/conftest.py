"""
Root test configuration and fixtures.

Provides:
- db_session: SQLite in-memory session with all tables created
- make_profile / make_daypass: row factories
- fixed_clock: deterministic processing time
- client: FastAPI TestClient bound to db_session
- auth_headers: Bearer header for a signed Supabase token
- make_async_client: mocked provider API client usable with "async with"
"""

import os
import uuid
import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator
from unittest.mock import AsyncMock

import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

TEST_JWT_SECRET = "test-supabase-jwt-secret-with-enough-length"
TEST_PAYSTACK_SECRET = "sk_test_panelpass"

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch):
    """Baseline environment; settings and plan catalog caches are reset."""
    from panelpass.config import plans
    from panelpass.config.settings import get_settings

    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("PAYSTACK_SECRET_KEY", TEST_PAYSTACK_SECRET)
    monkeypatch.setenv("GEO_LOOKUP_ENABLED", "false")
    for name in (
        "APP_BASE_URL",
        "PAYMENT_WEBHOOK_STRICT",
        "PAYPAL_CLIENT_ID",
        "PAYPAL_CLIENT_SECRET",
        "PAYPAL_WEBHOOK_ID",
        "DEFAULT_COUNTRY_CODE",
    ):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    plans._catalog = None
    yield
    get_settings.cache_clear()
    plans._catalog = None


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a fresh SQLite in-memory engine per test.

    StaticPool keeps a single connection so the TestClient's worker thread
    sees the same database as the test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import and create all tables
    from panelpass.db_base import Base
    from panelpass import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()

    yield session

    session.close()


@pytest.fixture
def fixed_clock():
    """Clock returning FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_profile(db_session):
    """
    Factory fixture that inserts a profile and returns it.

    Usage:
        profile = make_profile(subscription_tier="member", paypal_subscription_id="I-1")
    """
    from panelpass.models.profile import Profile

    def _make(user_id: str = None, **columns) -> Profile:
        profile = Profile(
            id=user_id or str(uuid.uuid4()),
            email=columns.pop("email", "reader@example.com"),
            **columns
        )
        db_session.add(profile)
        db_session.commit()
        return profile
    return _make


@pytest.fixture
def make_daypass(db_session):
    """Factory fixture that inserts an anonymous Day Pass row."""
    from panelpass.models.anonymous_daypass import AnonymousDayPass

    def _make(
        session_id: str = None,
        expires_at: datetime = None,
        payment_provider: str = "paystack",
        transaction_ref: str = "ref_123",
        user_id: str = None
    ) -> AnonymousDayPass:
        daypass = AnonymousDayPass(
            session_id=session_id or str(uuid.uuid4()),
            expires_at=expires_at or datetime.now(timezone.utc) + timedelta(hours=2),
            payment_provider=payment_provider,
            transaction_ref=transaction_ref,
            user_id=user_id,
        )
        db_session.add(daypass)
        db_session.commit()
        return daypass
    return _make


def make_access_token(user_id: str, **claims) -> str:
    """Sign a Supabase-style access token with the test secret."""
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "email": "reader@example.com",
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    payload.update(claims)
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Factory for an Authorization header for a given user id."""
    def _headers(user_id: str, **claims) -> dict:
        return {"Authorization": f"Bearer {make_access_token(user_id, **claims)}"}
    return _headers


@pytest.fixture
def client(db_session):
    """TestClient for the application, using db_session for every request."""
    from fastapi.testclient import TestClient
    from main import app
    from panelpass.database.session import get_db_session

    def override_get_db_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_async_client():
    """
    Factory for a mocked PaystackClient / PayPalClient.

    Usage:
        client = make_async_client(verify_transaction={"status": "success"})
        with patch("...get_paystack_client", return_value=client):
            ...
    """
    def _make(**return_values) -> AsyncMock:
        api_client = AsyncMock()
        api_client.__aenter__.return_value = api_client
        api_client.__aexit__.return_value = False
        for name, value in return_values.items():
            getattr(api_client, name).return_value = value
        return api_client
    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
