"""Repository adapters - Database and in-memory implementations."""

from .memory import (
    InMemoryAccountRepository,
    InMemoryOtpRepository,
    InMemoryPendingLoginRepository,
)
from .postgres import (
    PostgresAccountRepository,
    PostgresOtpRepository,
    PostgresPendingLoginRepository,
    run_migrations,
)

__all__ = [
    "InMemoryAccountRepository",
    "InMemoryOtpRepository",
    "InMemoryPendingLoginRepository",
    "PostgresAccountRepository",
    "PostgresOtpRepository",
    "PostgresPendingLoginRepository",
    "run_migrations",
]
