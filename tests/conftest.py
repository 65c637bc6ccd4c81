"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for expiry and rate-window tests
- In-memory repositories wired to that clock
- A recording email sender that captures issued codes
- A fully wired AuthService (bcrypt cost lowered for speed)
- A TestClient for the real app wired to the same in-memory adapters
"""

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from src.adapters.repository.memory import (
    InMemoryAccountRepository,
    InMemoryOtpRepository,
    InMemoryPendingLoginRepository,
)
from src.api.dependencies import get_email_sender
from src.api.main import app
from src.config.settings import Settings, get_settings
from src.domain.auth import AuthService
from src.domain.otp import OtpLedger
from src.domain.ports import OtpPurpose
from src.domain.tokens import TokenIssuer
from tests.helpers import (
    TEST_BCRYPT_COST,
    TEST_JWT_SECRET,
    FakeClock,
    RecordingEmailSender,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def account_repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def otp_repository(clock: FakeClock) -> InMemoryOtpRepository:
    return InMemoryOtpRepository(clock=clock)


@pytest.fixture
def pending_login_repository(clock: FakeClock) -> InMemoryPendingLoginRepository:
    return InMemoryPendingLoginRepository(clock=clock)


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def token_issuer() -> TokenIssuer:
    return TokenIssuer(secret=TEST_JWT_SECRET)


@pytest.fixture
def otp_ledger(otp_repository: InMemoryOtpRepository) -> OtpLedger:
    return OtpLedger(repository=otp_repository)


@pytest.fixture
def auth_service(
    account_repository: InMemoryAccountRepository,
    otp_ledger: OtpLedger,
    pending_login_repository: InMemoryPendingLoginRepository,
    email_sender: RecordingEmailSender,
    token_issuer: TokenIssuer,
) -> AuthService:
    return AuthService(
        accounts=account_repository,
        otp_ledger=otp_ledger,
        pending_logins=pending_login_repository,
        email_sender=email_sender,
        token_issuer=token_issuer,
        bcrypt_cost=TEST_BCRYPT_COST,
    )


@pytest.fixture
def register_active(
    auth_service: AuthService, email_sender: RecordingEmailSender
) -> Callable[[str, str, str], None]:
    """Factory that registers and verifies an account."""

    def _register(username: str, email: str, password: str) -> None:
        auth_service.register(username, email, password)
        code = email_sender.last_code(email, OtpPurpose.REGISTRATION)
        auth_service.verify_registration(email, code)

    return _register


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        storage_backend="memory",
        bcrypt_cost=TEST_BCRYPT_COST,
        jwt_secret=TEST_JWT_SECRET,
    )


@pytest.fixture
def api_client(
    account_repository: InMemoryAccountRepository,
    otp_repository: InMemoryOtpRepository,
    pending_login_repository: InMemoryPendingLoginRepository,
    email_sender: RecordingEmailSender,
    test_settings: Settings,
) -> Generator[TestClient, None, None]:
    """
    Client for the real application backed by in-memory repositories.

    The client is not entered as a context manager, so the lifespan
    (database pool, migrations, sweeper) never runs.
    """
    app.state.pool = None
    app.state.account_repository = account_repository
    app.state.otp_repository = otp_repository
    app.state.pending_login_repository = pending_login_repository
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
