"""Pytest configuration for movyads tests

WHAT: Provides shared fixtures for service, worker and HTTP endpoint tests
WHY: Each test gets its own file-backed SQLite database, so sessions opened
     by the worker loop and by the test see the same data
REFERENCES:
    - movyads/main.py: FastAPI application
    - movyads/database.py: Database configuration
    - movyads/tests/fakes.py: Graph API fakes
"""

import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from fastapi.testclient import TestClient

# Ensure backend is in path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
# Must be URL-safe base64-encoded 32-byte string (movyads.security validates at import time)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("MOVYADS_API_TOKEN", "test-service-token")


# ============================================================================
# Graph API
# ============================================================================

@pytest.fixture(autouse=True)
def no_rate_limit_sleep(monkeypatch):
    """The page limiter is process-wide; never let it sleep during tests."""
    from movyads.services import meta_ads_client

    monkeypatch.setattr(meta_ads_client, "sleep", lambda seconds: None)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite engine (shared by every session of one test)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'movyads_test.db'}",
        connect_args={"check_same_thread": False},
    )

    from movyads.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def tenant(db):
    from movyads.services.account_service import create_tenant

    return create_tenant(db, "Test Tenant")


@pytest.fixture
def ad_account(db, tenant):
    from movyads.models import AdAccount

    account = AdAccount(
        tenant_id=tenant.id,
        platform="meta",
        external_id="act_123",
        name="Main Account",
        status="active",
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def connected(db, tenant, ad_account):
    """Tenant with a stored credential and one ad account."""
    from movyads.services.token_service import store_tenant_credential

    store_tenant_credential(db, tenant.id, access_token="meta-token", meta_user_id="u-1")
    return SimpleNamespace(tenant=tenant, account=ad_account)


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(session_factory, monkeypatch):
    """FastAPI app bound to the per-test database."""
    monkeypatch.setenv("MOVYADS_API_TOKEN", "test-service-token")
    from movyads.deps import get_settings
    get_settings.cache_clear()

    from movyads.main import create_app
    from movyads.database import get_db

    test_app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    test_app.dependency_overrides[get_db] = override_get_db
    yield test_app
    get_settings.cache_clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-service-token"}
