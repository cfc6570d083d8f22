"""Single-use, time-limited password reset tokens.

Only the SHA-256 digest of a token is ever persisted. The raw value is handed
back once, at issuance, so that it can be mailed to the account holder; a copy
of the accounts table is therefore not enough to forge a usable reset link.

Each account moves between two states over its ``reset_token_hash`` /
``reset_token_expiry`` pair::

    NoPendingReset --issue--> PendingReset --consume/rollback/expiry--> NoPendingReset

Re-issuing while a reset is pending simply replaces the stored digest.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from ..domain.account import Account
from ..domain.errors import InvalidOrExpiredToken
from .passwords import hash_password

logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_reset_token() -> tuple[str, str]:
    """Generate a reset token string and its SHA-256 hash."""
    token = secrets.token_hex(RESET_TOKEN_BYTES)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    """Return the SHA-256 hex digest for a reset token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ResetTokenStore(Protocol):
    """Subset of the repository the token service relies on."""

    def find_by_reset_digest(self, digest: str, now: datetime) -> Account | None: ...

    def update_fields(
        self,
        account_id: str,
        fields: dict,
        *,
        expected_reset_hash: str | None = None,
        now: datetime | None = None,
    ) -> Account | None: ...

    def clear_reset_token(self, account_id: str, expected_reset_hash: str | None = None) -> None: ...


class ResetTokenService:
    """Issue, consume and roll back password reset tokens against the account store."""

    def __init__(
        self,
        repository: ResetTokenStore,
        *,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
        password_hasher: Callable[[str], str] = hash_password,
    ) -> None:
        self._repository = repository
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._hash_password = password_hasher

    def issue(self, account: Account) -> str:
        """Store a fresh token digest for ``account`` and return the raw token.

        The returned string is the only plaintext copy of the token; any
        previously pending token for the account stops working.
        """
        token, digest = generate_reset_token()
        expires_at = self._clock() + self._ttl
        self._repository.update_fields(
            account.account_id,
            {"reset_token_hash": digest, "reset_token_expiry": expires_at},
        )
        logger.info("password reset issued for account %s", account.account_id)
        return token

    def consume(self, token: str, new_password: str) -> Account:
        """Redeem ``token`` by replacing the account password.

        Raises
        ------
        InvalidOrExpiredToken
            When no account holds the token digest, the token has expired, or
            a concurrent request redeemed or replaced it first.
        """
        digest = hash_reset_token(token)
        now = self._clock()
        account = self._repository.find_by_reset_digest(digest, now)
        if account is None:
            raise InvalidOrExpiredToken()

        updated = self._repository.update_fields(
            account.account_id,
            {
                "password_hash": self._hash_password(new_password),
                "reset_token_hash": None,
                "reset_token_expiry": None,
            },
            expected_reset_hash=digest,
            now=now,
        )
        if updated is None:
            # lost the compare-and-set to a concurrent consume or re-issue
            raise InvalidOrExpiredToken()
        logger.info("password reset completed for account %s", updated.account_id)
        return updated

    def rollback(self, account: Account, token: str | None = None) -> None:
        """Drop a pending reset without redeeming it.

        With ``token`` the pending state is only cleared while it still belongs
        to that token. Calling this on an account with nothing pending is a no-op.
        """
        expected = hash_reset_token(token) if token is not None else None
        self._repository.clear_reset_token(account.account_id, expected)
