"""
Shared fixtures for integration tests.

PostgreSQL-backed tests use the ``pool`` fixture, which runs the
migrations once per session and skips when the database configured by
DATABASE_URL is not reachable (e.g. docker-compose is not up).
"""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresOtpRepository,
    PostgresPendingLoginRepository,
    run_migrations,
)
from src.api.dependencies import get_email_sender
from src.api.main import app
from src.config.settings import Settings, get_settings
from tests.helpers import RecordingEmailSender

INTEGRATION_DIR = Path(__file__).parent


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark tests under this directory that need PostgreSQL."""
    for item in items:
        if INTEGRATION_DIR in item.path.parents and "pool" in item.fixturenames:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=False,
    )
    try:
        pool.open(wait=True, timeout=5.0)
    except PoolTimeout:
        pool.close()
        pytest.skip(f"PostgreSQL not reachable at {settings.database_url}")

    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(request: pytest.FixtureRequest) -> None:
    """Empty every table before each PostgreSQL-backed test."""
    if "pool" not in request.fixturenames:
        return
    pool: ConnectionPool = request.getfixturevalue("pool")
    with pool.connection() as conn:
        conn.execute("DELETE FROM pending_logins")
        conn.execute("DELETE FROM otp_entries")
        conn.execute("DELETE FROM accounts")
        conn.commit()


@pytest.fixture
def postgres_client(
    pool: ConnectionPool,
    email_sender: RecordingEmailSender,
    test_settings: Settings,
) -> Generator[TestClient, None, None]:
    """Client for the real application backed by PostgreSQL repositories."""
    app.state.pool = pool
    app.state.account_repository = PostgresAccountRepository(pool)
    app.state.otp_repository = PostgresOtpRepository(pool)
    app.state.pending_login_repository = PostgresPendingLoginRepository(pool)
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
