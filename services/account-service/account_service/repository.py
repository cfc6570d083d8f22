"""Database repository for account credentials."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

import psycopg
from psycopg import sql
from psycopg.errors import UniqueViolation
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import NewAccountRecord
from .domain.errors import StoreUnavailable

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    reset_token_hash TEXT,
    reset_token_expiry TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT accounts_reset_pair
        CHECK ((reset_token_hash IS NULL) = (reset_token_expiry IS NULL))
);
CREATE UNIQUE INDEX IF NOT EXISTS accounts_email_lower_idx ON accounts (lower(email));
CREATE INDEX IF NOT EXISTS accounts_reset_token_hash_idx
    ON accounts (reset_token_hash) WHERE reset_token_hash IS NOT NULL;
"""

_COLUMNS = (
    "account_id, display_name, email, phone, password_hash, "
    "created_at, updated_at, reset_token_hash, reset_token_expiry"
)

UPDATABLE_FIELDS = frozenset(
    {"display_name", "phone", "password_hash", "reset_token_hash", "reset_token_expiry"}
)


class DuplicateKeyError(Exception):
    """Raised when an insert collides with the unique email index."""


class AccountRepository:
    """Postgres-backed account persistence relying on single-statement atomic updates."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        """Borrow a pooled connection, translating connectivity failures."""
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as exc:
            logger.exception("account store unavailable")
            raise StoreUnavailable() from exc

    def ensure_schema(self) -> None:
        """Create the accounts table and its indexes when missing."""
        with self._connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def find_by_email(self, email: str) -> Account | None:
        """Return the account registered under ``email`` (case-insensitive)."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM accounts WHERE lower(email) = lower(%s)",
                    (email.strip(),),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def insert(self, record: NewAccountRecord) -> Account:
        """Persist a new account, raising :class:`DuplicateKeyError` if the email is taken."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (account_id, display_name, email, phone, password_hash, created_at, updated_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            account_id,
                            record.display_name,
                            record.email,
                            record.phone,
                            record.password_hash,
                            now,
                            now,
                        ),
                    )
                except UniqueViolation as exc:
                    conn.rollback()
                    raise DuplicateKeyError(record.email) from exc
                row = cur.fetchone()
            conn.commit()
        return self._map_record(row)

    def update_fields(
        self,
        account_id: str,
        fields: dict[str, Any],
        *,
        expected_reset_hash: str | None = None,
        now: datetime | None = None,
    ) -> Account | None:
        """Apply ``fields`` to an account in a single ``UPDATE`` statement.

        When ``expected_reset_hash`` is supplied the update is a compare-and-set:
        it only applies while the stored reset digest equals that value and its
        expiry is later than ``now``. Returns the updated account, or ``None``
        when no row matched.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not updatable: {sorted(unknown)}")

        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(name)) for name in fields
        ]
        assignments.append(sql.SQL("updated_at = %s"))
        params: list[Any] = [*fields.values(), datetime.now(timezone.utc)]

        conditions = [sql.SQL("account_id = %s")]
        params.append(account_id)
        if expected_reset_hash is not None:
            conditions.append(sql.SQL("reset_token_hash = %s AND reset_token_expiry > %s"))
            params.extend([expected_reset_hash, now or datetime.now(timezone.utc)])

        query = sql.SQL("UPDATE accounts SET {} WHERE {} RETURNING {}").format(
            sql.SQL(", ").join(assignments),
            sql.SQL(" AND ").join(conditions),
            sql.SQL(_COLUMNS),
        )
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            conn.commit()
        return self._map_record(row) if row else None

    def clear_reset_token(self, account_id: str, expected_reset_hash: str | None = None) -> None:
        """Remove any pending reset; with ``expected_reset_hash`` only if it is still current."""
        query = """
            UPDATE accounts
            SET reset_token_hash = NULL, reset_token_expiry = NULL, updated_at = NOW()
            WHERE account_id = %s AND reset_token_hash IS NOT NULL
        """
        params: tuple[Any, ...] = (account_id,)
        if expected_reset_hash is not None:
            query += " AND reset_token_hash = %s"
            params = (account_id, expected_reset_hash)
        with self._connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
            conn.commit()

    def find_by_reset_digest(self, digest: str, now: datetime) -> Account | None:
        """Return the account holding an unexpired reset token with ``digest``."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM accounts
                    WHERE reset_token_hash = %s AND reset_token_expiry > %s
                    """,
                    (digest, now),
                )
                row = cur.fetchone()
        return self._map_record(row) if row else None

    def list_accounts(self) -> list[Account]:
        """Return every account, oldest first."""
        with self._connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM accounts ORDER BY created_at, account_id")
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            display_name=row[1],
            email=row[2],
            phone=row[3],
            password_hash=row[4],
            created_at=row[5],
            updated_at=row[6],
            reset_token_hash=row[7],
            reset_token_expiry=row[8],
        )
