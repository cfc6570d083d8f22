"""Rejections raised by the account workflows.

Every error subclasses ``ValueError`` so callers that only care about "the
request was rejected" can catch a single type. The ``message`` of each error
is safe to return to clients; nothing here embeds secrets or reveals whether
an email address is registered.
"""

from __future__ import annotations


class AccountError(ValueError):
    """Base class for recoverable account workflow rejections."""

    code = "account_error"
    default_message = "request rejected"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingField(AccountError):
    code = "missing_field"
    default_message = "all fields are required"

    def __init__(self, message: str | None = None, *, fields: list[str] | None = None) -> None:
        self.fields = fields or []
        super().__init__(message)


class InvalidField(AccountError):
    code = "invalid_field"
    default_message = "invalid field"


class PasswordMismatch(AccountError):
    code = "password_mismatch"
    default_message = "passwords do not match"


class WeakPassword(AccountError):
    code = "weak_password"
    default_message = "password is too short"


class DuplicateAccount(AccountError):
    code = "duplicate_account"
    default_message = "an account with this email already exists"


class InvalidCredentials(AccountError):
    code = "invalid_credentials"
    default_message = "invalid credentials"


class InvalidOrExpiredToken(AccountError):
    code = "invalid_or_expired_token"
    default_message = "invalid or expired token"


class NotificationFailed(AccountError):
    code = "notification_failed"
    default_message = "notification could not be delivered"


class StoreUnavailable(AccountError):
    code = "store_unavailable"
    default_message = "account store unavailable"
