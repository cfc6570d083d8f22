"""Tests for the account workflows."""

from __future__ import annotations

import pytest

from account_service.domain.contracts import RegisterAccountInput
from account_service.domain.errors import (
    DuplicateAccount,
    InvalidCredentials,
    InvalidField,
    InvalidOrExpiredToken,
    MissingField,
    NotificationFailed,
    PasswordMismatch,
    WeakPassword,
)
from account_service.security.passwords import verify_password
from account_service.security.reset_tokens import hash_reset_token


def _registration(**overrides) -> RegisterAccountInput:
    values = {
        "display_name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+44 20 7946 0000",
        "password": "abc123",
        "password_confirmation": "abc123",
    }
    values.update(overrides)
    return RegisterAccountInput(**values)


def _token_from(notifier) -> str:
    _, _, body_text, _ = notifier.sent[-1]
    link = next(line for line in body_text.splitlines() if "/reset-password/" in line)
    return link.rsplit("/", 1)[-1]


def test_register_persists_hashed_password(service, repository):
    account = service.register(_registration(email="  Ada@Example.com "))

    assert account.email == "ada@example.com"
    assert account.display_name == "Ada Lovelace"
    assert account.password_hash != "abc123"
    assert verify_password("abc123", repository.stored("ada@example.com").password_hash)
    assert not account.has_pending_reset


@pytest.mark.parametrize(
    "field", ["display_name", "email", "phone", "password", "password_confirmation"]
)
def test_register_requires_every_field(service, repository, field):
    with pytest.raises(MissingField):
        service.register(_registration(**{field: None}))
    assert repository.list_accounts() == []


def test_register_rejects_password_mismatch_without_persisting(service, repository):
    with pytest.raises(PasswordMismatch):
        service.register(_registration(password="abc123", password_confirmation="abc124"))
    assert repository.list_accounts() == []


def test_register_rejects_short_password(service):
    with pytest.raises(WeakPassword):
        service.register(_registration(password="abc12", password_confirmation="abc12"))


def test_register_rejects_invalid_fields(service):
    with pytest.raises(InvalidField):
        service.register(_registration(email="not-an-email"))
    with pytest.raises(InvalidField):
        service.register(_registration(phone="phone number"))
    with pytest.raises(InvalidField):
        service.register(_registration(display_name="A"))


def test_register_duplicate_email_is_case_insensitive(service, repository):
    service.register(_registration(email="A@x.com"))

    with pytest.raises(DuplicateAccount):
        service.register(_registration(email="a@x.com"))

    assert len(repository.list_accounts()) == 1


def test_register_converts_unique_race_into_duplicate(service, repository):
    service.register(_registration())
    # simulate a concurrent registration that passed the existence check
    repository.find_by_email = lambda email: None

    with pytest.raises(DuplicateAccount):
        service.register(_registration())
    assert len(repository.list_accounts()) == 1


def test_login_returns_account_for_valid_credentials(service):
    registered = service.register(_registration())

    account = service.login("ADA@example.com", "abc123")

    assert account.account_id == registered.account_id


def test_login_failures_are_indistinguishable(service):
    service.register(_registration())

    with pytest.raises(InvalidCredentials) as wrong_password:
        service.login("ada@example.com", "wrong-password")
    with pytest.raises(InvalidCredentials) as unknown_email:
        service.login("nobody@example.com", "abc123")

    assert type(wrong_password.value) is type(unknown_email.value)
    assert wrong_password.value.message == unknown_email.value.message


def test_login_requires_email_and_password(service):
    with pytest.raises(MissingField):
        service.login("", "abc123")
    with pytest.raises(MissingField):
        service.login("ada@example.com", None)


def test_password_reset_round_trip(service, notifier, repository):
    service.register(_registration())

    service.request_password_reset("ada@example.com")

    destination, subject, body_text, body_html = notifier.sent[-1]
    assert destination == "ada@example.com"
    assert subject == "Password reset"
    assert "https://app.example.com/reset-password/" in body_text
    assert "valid for 60 minutes" in body_text
    token = _token_from(notifier)
    assert token in body_html
    assert repository.stored("ada@example.com").reset_token_hash == hash_reset_token(token)

    service.complete_password_reset(token, "fresh-pass", "fresh-pass")

    assert service.login("ada@example.com", "fresh-pass")
    with pytest.raises(InvalidCredentials):
        service.login("ada@example.com", "abc123")
    with pytest.raises(InvalidOrExpiredToken):
        service.complete_password_reset(token, "other-pass", "other-pass")


def test_reset_request_for_unknown_email_is_silent(service, notifier):
    assert service.request_password_reset("ghost@example.com") is None
    assert notifier.sent == []


def test_reset_request_rolls_back_when_notification_fails(service, notifier, repository):
    service.register(_registration())
    notifier.fail = True

    with pytest.raises(NotificationFailed):
        service.request_password_reset("ada@example.com")

    assert not repository.stored("ada@example.com").has_pending_reset

    notifier.fail = False
    service.request_password_reset("ada@example.com")
    assert repository.stored("ada@example.com").has_pending_reset


def test_reset_request_requires_email(service):
    with pytest.raises(MissingField):
        service.request_password_reset("  ")


def test_complete_reset_validates_before_touching_token(service, notifier, repository):
    service.register(_registration())
    service.request_password_reset("ada@example.com")
    token = _token_from(notifier)

    with pytest.raises(PasswordMismatch):
        service.complete_password_reset(token, "fresh-pass", "fresh-pasz")
    with pytest.raises(WeakPassword):
        service.complete_password_reset(token, "short", "short")
    with pytest.raises(MissingField):
        service.complete_password_reset(token, None, None)

    assert repository.stored("ada@example.com").reset_token_hash == hash_reset_token(token)


def test_complete_reset_after_expiry_fails(service, notifier, clock):
    service.register(_registration())
    service.request_password_reset("ada@example.com")
    token = _token_from(notifier)
    clock.advance(hours=2)

    with pytest.raises(InvalidOrExpiredToken):
        service.complete_password_reset(token, "fresh-pass", "fresh-pass")


def test_list_accounts_returns_all_in_creation_order(service):
    first = service.register(_registration(email="one@example.com"))
    second = service.register(_registration(email="two@example.com"))

    assert [a.account_id for a in service.list_accounts()] == [
        first.account_id,
        second.account_id,
    ]
