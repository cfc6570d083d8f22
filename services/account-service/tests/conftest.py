from __future__ import annotations

import os

# keep bcrypt at its minimum cost so the suite stays quick
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from account_service.api import routes
from account_service.domain.account import Account
from account_service.domain.contracts import NewAccountRecord
from account_service.domain.errors import NotificationFailed
from account_service.domain.service import AccountService
from account_service.repository import UPDATABLE_FIELDS, DuplicateKeyError
from account_service.security.reset_tokens import ResetTokenService


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviours."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}

    def find_by_email(self, email: str):
        needle = email.strip().lower()
        for account in self._accounts.values():
            if account.email.lower() == needle:
                return replace(account)
        return None

    def insert(self, record: NewAccountRecord):
        if any(a.email.lower() == record.email.lower() for a in self._accounts.values()):
            raise DuplicateKeyError(record.email)
        now = datetime.now(timezone.utc)
        account = Account(
            account_id=str(uuid.uuid4()),
            display_name=record.display_name,
            email=record.email,
            phone=record.phone,
            password_hash=record.password_hash,
            created_at=now,
            updated_at=now,
        )
        self._accounts[account.account_id] = account
        return replace(account)

    def update_fields(self, account_id, fields, *, expected_reset_hash=None, now=None):
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not updatable: {sorted(unknown)}")
        account = self._accounts.get(account_id)
        if account is None:
            return None
        if expected_reset_hash is not None:
            now = now or datetime.now(timezone.utc)
            if account.reset_token_hash != expected_reset_hash:
                return None
            if account.reset_token_expiry is None or account.reset_token_expiry <= now:
                return None
        for name, value in fields.items():
            setattr(account, name, value)
        account.updated_at = datetime.now(timezone.utc)
        return replace(account)

    def clear_reset_token(self, account_id, expected_reset_hash=None):
        account = self._accounts.get(account_id)
        if account is None or account.reset_token_hash is None:
            return
        if expected_reset_hash is not None and account.reset_token_hash != expected_reset_hash:
            return
        account.reset_token_hash = None
        account.reset_token_expiry = None

    def find_by_reset_digest(self, digest, now):
        for account in self._accounts.values():
            if account.reset_token_hash == digest and account.reset_token_expiry > now:
                return replace(account)
        return None

    def list_accounts(self):
        return [replace(a) for a in sorted(self._accounts.values(), key=lambda a: a.created_at)]

    def stored(self, email: str) -> Account:
        """Return the live stored record (test helper)."""
        for account in self._accounts.values():
            if account.email == email.lower():
                return account
        raise KeyError(email)


class RecordingNotifier:
    """Notifier double that records messages and can be told to fail."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, str]] = []
        self.fail = False

    def send(self, destination, subject, body_text, body_html):
        if self.fail:
            raise NotificationFailed()
        self.sent.append((destination, subject, body_text, body_html))


class FrozenClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def reset_tokens(repository, clock) -> ResetTokenService:
    return ResetTokenService(repository, ttl_seconds=3600, clock=clock)


@pytest.fixture
def service(repository, notifier, reset_tokens) -> AccountService:
    return AccountService(repository, notifier, reset_tokens=reset_tokens)


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = service

    with TestClient(app) as client:
        yield client
