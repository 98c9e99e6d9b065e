import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing the app
# Force dev mode for the default test app; production validation tests patch settings
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test_token")
os.environ.setdefault("WHATSAPP_ACCESS_TOKEN", "test_token")
os.environ.setdefault("WHATSAPP_PHONE_NUMBER_ID", "test_id")
# Note: WHATSAPP_APP_SECRET not set by default - allows tests without signature verification
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_test")
os.environ.setdefault("WHATSAPP_DRY_RUN", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")  # Disable rate limiting in tests

from luxepass.api.dependencies import get_message_gateway  # noqa: E402
from luxepass.db.base import Base  # noqa: E402
from luxepass.db.deps import get_db  # noqa: E402
# Import all models so Base.metadata includes every table
import luxepass.db.models as _models  # noqa: E402, F401
from luxepass.main import app  # noqa: E402
from luxepass.services.catalog import get_catalog  # noqa: E402
from luxepass.services.messaging.message_composer import MessageComposer  # noqa: E402
from luxepass.services.sessions import InMemorySessionStore  # noqa: E402
from luxepass.services.workflow.engine import WorkflowEngine  # noqa: E402
from luxepass.services.workflow.locks import IdentifierLocks  # noqa: E402
from tests.helpers.fakes import FROZEN_NOW, FakeBookings, FakeGateway, FakePayments  # noqa: E402

SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    return (SQLALCHEMY_DATABASE_URL or "").startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make the app use the same DB so background workflow jobs see the same schema
import luxepass.db.session as _db_session  # noqa: E402

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal

@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database dependency override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    from luxepass.middleware.rate_limit import limiter

    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def wa_gateway(client):
    """FakeGateway injected into request handlers and the background jobs they queue."""
    fake = FakeGateway()
    app.dependency_overrides[get_message_gateway] = lambda: fake
    return fake


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def events():
    """Captured event_log calls: (level, event_type, kwargs)."""
    return []


@pytest.fixture
def make_workflow(session_store, gateway, payments, events):
    """Factory for engines over in-memory collaborators with a fixed clock."""

    def event_log(level, event_type, **kwargs):
        events.append((level, event_type, kwargs))

    def _make(store=None, **overrides):
        options = {
            "gateway": gateway,
            "payments": payments,
            "bookings": FakeBookings(),
            "catalog": get_catalog(),
            "event_log": event_log,
            "composer": MessageComposer(),
            "clock": lambda: FROZEN_NOW,
            "locks": IdentifierLocks(),
            "max_attempts": 3,
        }
        options.update(overrides)
        return WorkflowEngine(store=store or session_store, **options)

    return _make


@pytest.fixture
def workflow(make_workflow):
    return make_workflow()
