"""Global test fixtures for the RumorMill test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from rumormill.core.config import CoreSettings, clear_config_cache, set_config
from rumormill.core.identity import IdentityTokenService
from rumormill.core.lifecycle import ClaimService
from rumormill.storage.memory import InMemoryStore

# ============================================================================
# PostgreSQL Availability Detection
# ============================================================================


def _check_postgres_available() -> tuple[bool, str | None]:
    """Check if PostgreSQL is available for integration tests.

    Returns:
        Tuple of (is_available, error_message)
    """
    try:
        import psycopg2
    except ImportError:
        return False, "psycopg2 not installed"

    if not os.environ.get("RUMORMILL_TEST_POSTGRES"):
        return False, "RUMORMILL_TEST_POSTGRES not set"

    try:
        conn = psycopg2.connect(
            host=os.environ.get("RUMORMILL_DB_HOST", "localhost"),
            port=int(os.environ.get("RUMORMILL_DB_PORT", "5432")),
            dbname=os.environ.get("RUMORMILL_DB_NAME", "rumormill"),
            user=os.environ.get("RUMORMILL_DB_USER", "rumormill"),
            password=os.environ.get("RUMORMILL_DB_PASSWORD", ""),
            connect_timeout=3,
        )
        conn.close()
        return True, None
    except psycopg2.OperationalError as e:
        return False, f"PostgreSQL connection failed: {e}"


POSTGRES_AVAILABLE, POSTGRES_ERROR = _check_postgres_available()


def pytest_collection_modifyitems(config, items):
    """Skip tests that require PostgreSQL when no database is reachable."""
    if POSTGRES_AVAILABLE:
        return

    skip_postgres = pytest.mark.skip(reason=f"PostgreSQL not available: {POSTGRES_ERROR}")
    for item in items:
        if "requires_postgres" in item.keywords:
            item.add_marker(skip_postgres)


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all RUMORMILL_ environment variables and the cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("RUMORMILL_"):
            monkeypatch.delenv(key, raising=False)
    # An ambient .env file must not leak into settings tests
    monkeypatch.chdir(os.path.dirname(__file__))
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def reset_config():
    """Never let one test's installed config leak into the next."""
    yield
    clear_config_cache()


@pytest.fixture
def settings(clean_env) -> CoreSettings:
    """Default settings with a fixed salt, installed as the global config."""
    config = CoreSettings(identity_salt="test-salt")
    set_config(config)
    return config


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Manually advanced, timezone-aware clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Store and Service
# ============================================================================


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def tokens() -> IdentityTokenService:
    return IdentityTokenService("test-salt")


@pytest.fixture
def service(settings, store, clock) -> ClaimService:
    """Service over an in-memory store with default thresholds and a fake clock."""
    return ClaimService.from_config(settings, store=store, clock=clock)


# ============================================================================
# psycopg2 fixtures
# ============================================================================


@pytest.fixture
def mock_cursor():
    """Patch the cursor used by the PostgreSQL store."""
    cursor = MagicMock()
    cursor.fetchone.return_value = None
    cursor.fetchall.return_value = []

    cm = MagicMock()
    cm.__enter__ = MagicMock(return_value=cursor)
    cm.__exit__ = MagicMock(return_value=False)

    with patch("rumormill.storage.postgres.get_cursor", return_value=cm):
        yield cursor


@pytest.fixture
def mock_psycopg2_pool():
    """Mock the psycopg2 connection pool used by rumormill.core.db."""
    from rumormill.core import db

    mock_conn = MagicMock()
    mock_conn.closed = False
    mock_cursor = MagicMock()
    mock_pool = MagicMock()

    mock_conn.cursor.return_value = mock_cursor
    mock_cursor.__enter__ = MagicMock(return_value=mock_cursor)
    mock_cursor.__exit__ = MagicMock(return_value=False)

    mock_pool.getconn.return_value = mock_conn

    db._pool = None
    with patch("rumormill.core.db.psycopg2_pool.ThreadedConnectionPool") as mock_pool_class:
        mock_pool_class.return_value = mock_pool
        yield {
            "pool_class": mock_pool_class,
            "pool": mock_pool,
            "connection": mock_conn,
            "cursor": mock_cursor,
        }
    db._pool = None
