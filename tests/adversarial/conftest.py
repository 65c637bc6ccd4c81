"""
Shared fixtures for adversarial tests.

Attack simulations run against the in-memory adapters from the root
conftest, so they need no database. The PostgreSQL equivalents of the
race tests live in tests/integration.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from src.domain.auth import AuthService
from src.domain.ports import OtpPurpose
from tests.helpers import RecordingEmailSender

ADVERSARIAL_DIR = Path(__file__).parent


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test under this directory as adversarial."""
    for item in items:
        if ADVERSARIAL_DIR in item.path.parents:
            item.add_marker(pytest.mark.adversarial)


@pytest.fixture
def start_login(
    auth_service: AuthService,
    email_sender: RecordingEmailSender,
    register_active: Callable[[str, str, str], None],
) -> Callable[[str], str]:
    """Factory that activates an account, logs in and returns the login code."""

    def _start(email: str) -> str:
        register_active(email.split("@")[0], email, "secret1")
        auth_service.login(email, "secret1")
        return email_sender.last_code(email, OtpPurpose.LOGIN)

    return _start
