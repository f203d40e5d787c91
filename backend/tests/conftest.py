import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

import credit_ledger.models  # noqa: F401
from credit_ledger.core.config import settings
from credit_ledger.core.database import Base, get_db, utcnow
from credit_ledger.main import app as fastapi_app
from credit_ledger.models import CreditPack, User
from credit_ledger.services.auth import create_access_token

settings.STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
settings.PAYSTACK_SECRET_KEY = "sk_test_paystack_secret"
settings.EXPIRY_SWEEP_ENABLED = False

# In-memory SQLite for tests, no PostgreSQL needed
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Provide a test database session."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient with overridden DB dependency."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture
def user_factory(db):
    def _create(email: str | None = None, **overrides) -> User:
        user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", **overrides)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _create


@pytest.fixture
def user(user_factory) -> User:
    return user_factory("member@example.com")


@pytest.fixture
def admin_user(user_factory) -> User:
    return user_factory("admin@example.com", is_admin=True)


@pytest.fixture
def user_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(admin_user.id)}"}


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------


@pytest.fixture
def pack_factory(db):
    """Insert packs directly, bypassing the ledger (no grant transaction)."""

    def _create(
        user: User,
        credits: int,
        expires_in: timedelta | None = None,
        *,
        remaining: int | None = None,
        status: str = "active",
        issued_at: datetime | None = None,
        source: str = "stripe",
    ) -> CreditPack:
        now = utcnow()
        pack = CreditPack(
            user_id=user.id,
            credits_granted=credits,
            credits_remaining=credits if remaining is None else remaining,
            source_reference=f"test:{uuid.uuid4()}",
            source=source,
            status=status,
            issued_at=issued_at or now,
            expires_at=now + expires_in if expires_in is not None else None,
        )
        db.add(pack)
        db.commit()
        db.refresh(pack)
        return pack

    return _create


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestSessionLocal
