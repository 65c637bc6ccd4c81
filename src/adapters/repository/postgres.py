"""
PostgreSQL repository adapters - Implement the domain's persistence ports.

This module provides the PostgreSQL implementations of the account,
OTP ledger and pending-login ports using psycopg3 with raw SQL.

Concurrency Design
------------------
1. **OTP issue**: a single ``INSERT ... ON CONFLICT (email, purpose) DO UPDATE``
   overwrites the entry and bumps the rate-limit counter. The conflicting row
   is locked for the statement, so the issue admitted last always wins.

2. **OTP verify**: ``SELECT ... FOR UPDATE`` locks the entry row, the outcome
   is decided by ``judge_attempt`` and the resulting mutation (attempt count
   or consumed flag) is written in the same transaction. Concurrent verifies
   of the same key queue on the row lock; only the first can consume.

3. **Time**: expiry and rate windows use database time (``NOW()``), never
   the application clock.

Connection failures are translated to ``StorageUnavailable``.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg.errors import UniqueViolation
from psycopg_pool import ConnectionPool

from src.domain.exceptions import StorageUnavailable
from src.domain.models import Account, OtpEntry
from src.domain.otp import judge_attempt
from src.domain.ports import ClaimResult, OtpPurpose, VerifyResult

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "id, username, email, password_hash, enabled, email_verified"


@contextmanager
def _connection(pool: ConnectionPool) -> Iterator[psycopg.Connection]:
    """Borrow a pooled connection, mapping connectivity errors to the domain."""
    try:
        with pool.connection() as conn:
            yield conn
    except psycopg.OperationalError as e:
        logger.error("Database unavailable: %s", e)
        raise StorageUnavailable() from e


def _row_to_account(row: tuple) -> Account:
    return Account(
        id=row[0],
        username=row[1],
        email=row[2],
        password_hash=row[3],
        enabled=row[4],
        email_verified=row[5],
    )


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def claim_account(self, username: str, email: str, password_hash: str) -> ClaimResult:
        """
        Atomically insert an unverified account or restart an unverified one.

        Uses INSERT ... ON CONFLICT DO UPDATE WHERE for atomic upsert.
        The WHERE clause ensures verified accounts are never overwritten.
        ``xmax = 0`` distinguishes a fresh insert from an update.
        A unique violation can only come from the username constraint.
        """
        sql = """
            INSERT INTO accounts (username, email, password_hash, enabled, email_verified)
            VALUES (%s, %s, %s, FALSE, FALSE)
            ON CONFLICT (email) DO UPDATE
            SET username = EXCLUDED.username,
                password_hash = EXCLUDED.password_hash,
                updated_at = NOW()
            WHERE accounts.email_verified = FALSE
            RETURNING (xmax = 0) AS inserted
        """

        with _connection(self._pool) as conn, conn.cursor() as cursor:
            try:
                cursor.execute(sql, (username, email, password_hash))
            except UniqueViolation:
                conn.rollback()
                return ClaimResult.USERNAME_TAKEN
            row = cursor.fetchone()
            conn.commit()

        if row is None:
            return ClaimResult.EMAIL_ACTIVE
        return ClaimResult.CREATED if row[0] else ClaimResult.RESTARTED

    def get_by_email(self, email: str) -> Account | None:
        sql = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = %s"
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()
        return _row_to_account(row) if row else None

    def get_by_id(self, account_id: int) -> Account | None:
        sql = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s"
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (account_id,))
            row = cursor.fetchone()
        return _row_to_account(row) if row else None

    def mark_verified(self, email: str) -> bool:
        sql = """
            UPDATE accounts
            SET email_verified = TRUE, enabled = TRUE, updated_at = NOW()
            WHERE email = %s
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            conn.commit()
            return cursor.rowcount == 1

    def update_password(self, email: str, password_hash: str) -> bool:
        sql = """
            UPDATE accounts
            SET password_hash = %s, updated_at = NOW()
            WHERE email = %s
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (password_hash, email))
            conn.commit()
            return cursor.rowcount == 1


class PostgresOtpRepository:
    """Implements OtpRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def issue(
        self,
        email: str,
        purpose: OtpPurpose,
        code: str,
        ttl_seconds: int,
        issue_limit: int,
        window_seconds: int,
    ) -> bool:
        """
        Overwrite the entry for (email, purpose) unless rate limited.

        The rate window restarts once ``window_seconds`` have passed since it
        opened. Within a window the update is skipped (rowcount 0) when
        ``issue_limit`` codes were already issued.

        Returns:
            True if the code was stored, False if rate limited
        """
        sql = """
            INSERT INTO otp_entries
                (email, purpose, code, expires_at, consumed, attempt_count,
                 window_started_at, issue_count, created_at)
            VALUES
                (%(email)s, %(purpose)s, %(code)s,
                 NOW() + %(ttl)s::integer * INTERVAL '1 second',
                 FALSE, 0, NOW(), 1, NOW())
            ON CONFLICT (email, purpose) DO UPDATE
            SET code = EXCLUDED.code,
                expires_at = EXCLUDED.expires_at,
                consumed = FALSE,
                attempt_count = 0,
                created_at = NOW(),
                window_started_at = CASE
                    WHEN otp_entries.window_started_at
                         <= NOW() - %(window)s::integer * INTERVAL '1 second'
                    THEN NOW()
                    ELSE otp_entries.window_started_at
                END,
                issue_count = CASE
                    WHEN otp_entries.window_started_at
                         <= NOW() - %(window)s::integer * INTERVAL '1 second'
                    THEN 1
                    ELSE otp_entries.issue_count + 1
                END
            WHERE otp_entries.window_started_at
                  <= NOW() - %(window)s::integer * INTERVAL '1 second'
               OR otp_entries.issue_count < %(limit)s
        """
        params = {
            "email": email,
            "purpose": purpose.value,
            "code": code,
            "ttl": ttl_seconds,
            "window": window_seconds,
            "limit": issue_limit,
        }

        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            conn.commit()
            return cursor.rowcount == 1

    def verify(
        self, email: str, purpose: OtpPurpose, code: str, max_attempts: int
    ) -> VerifyResult:
        """
        Verify ``code`` with the entry row locked for the transaction.

        Uses SELECT FOR UPDATE so concurrent verifies and issues on the same
        key are serialized; the mutation is committed before the lock drops.
        """
        select_sql = """
            SELECT code, expires_at, consumed, attempt_count, NOW()
            FROM otp_entries
            WHERE email = %s AND purpose = %s
            FOR UPDATE
        """

        increment_sql = """
            UPDATE otp_entries
            SET attempt_count = attempt_count + 1
            WHERE email = %s AND purpose = %s
        """

        consume_sql = """
            UPDATE otp_entries
            SET consumed = TRUE
            WHERE email = %s AND purpose = %s AND consumed = FALSE
        """

        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(select_sql, (email, purpose.value))
            row = cursor.fetchone()

            entry = None
            now = None
            if row is not None:
                entry = OtpEntry(
                    email=email,
                    purpose=purpose,
                    code=row[0],
                    expires_at=row[1],
                    consumed=row[2],
                    attempt_count=row[3],
                )
                now = row[4]

            # judge_attempt needs a clock only when an entry exists
            result = judge_attempt(entry, code, now, max_attempts)

            if result is VerifyResult.MISMATCH:
                cursor.execute(increment_sql, (email, purpose.value))
            elif result is VerifyResult.SUCCESS:
                cursor.execute(consume_sql, (email, purpose.value))

            conn.commit()
            return result

    def get(self, email: str, purpose: OtpPurpose) -> OtpEntry | None:
        """Snapshot of the entry for a key (inspection helper)."""
        sql = """
            SELECT code, expires_at, consumed, attempt_count
            FROM otp_entries
            WHERE email = %s AND purpose = %s
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email, purpose.value))
            row = cursor.fetchone()
        if row is None:
            return None
        return OtpEntry(
            email=email,
            purpose=purpose,
            code=row[0],
            expires_at=row[1],
            consumed=row[2],
            attempt_count=row[3],
        )

    def purge_expired(self, window_seconds: int) -> int:
        """Delete expired entries whose rate window also closed."""
        sql = """
            DELETE FROM otp_entries
            WHERE expires_at <= NOW()
              AND window_started_at <= NOW() - %s::integer * INTERVAL '1 second'
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (window_seconds,))
            conn.commit()
            return cursor.rowcount


class PostgresPendingLoginRepository:
    """Implements PendingLoginRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, email: str, account_id: int, ttl_seconds: int) -> None:
        sql = """
            INSERT INTO pending_logins (email, account_id, expires_at)
            VALUES (%s, %s, NOW() + %s::integer * INTERVAL '1 second')
            ON CONFLICT (email) DO UPDATE
            SET account_id = EXCLUDED.account_id,
                expires_at = EXCLUDED.expires_at,
                created_at = NOW()
        """
        with _connection(self._pool) as conn:
            conn.execute(sql, (email, account_id, ttl_seconds))
            conn.commit()

    def exists(self, email: str) -> bool:
        sql = "SELECT 1 FROM pending_logins WHERE email = %s AND expires_at > NOW()"
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            return cursor.fetchone() is not None

    def refresh(self, email: str, ttl_seconds: int) -> bool:
        sql = """
            UPDATE pending_logins
            SET expires_at = NOW() + %s::integer * INTERVAL '1 second'
            WHERE email = %s AND expires_at > NOW()
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (ttl_seconds, email))
            conn.commit()
            return cursor.rowcount == 1

    def take(self, email: str) -> int | None:
        """Delete the pending login; only a live one yields its account id."""
        sql = """
            DELETE FROM pending_logins
            WHERE email = %s
            RETURNING account_id, expires_at > NOW()
        """
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute(sql, (email,))
            row = cursor.fetchone()
            conn.commit()
        if row is None or not row[1]:
            return None
        return row[0]

    def purge_expired(self) -> int:
        with _connection(self._pool) as conn, conn.cursor() as cursor:
            cursor.execute("DELETE FROM pending_logins WHERE expires_at <= NOW()")
            conn.commit()
            return cursor.rowcount


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
