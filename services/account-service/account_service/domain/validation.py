"""Field validation rules applied before anything is persisted."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern

from .errors import InvalidField, MissingField, PasswordMismatch, WeakPassword

# Same language as ^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$ with ASCII-only \w,
# minus the nested optional groups that backtrack exponentially.
EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*\.\w{2,3}$", re.ASCII)
EMAIL_MAX_LENGTH = 254

PHONE_POLICIES: dict[str, str] = {
    "permissive": r"^[\d\s\-\(\)\+]+$",
    # (11) 91234-5678, 11 1234-5678, +55 (11) 91234-5678
    "br": r"^(\+55\s?)?\(?\d{2}\)?\s?9?\d{4}-?\d{4}$",
}

DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 50


def phone_pattern_for(policy: str, override: str = "") -> Pattern[str]:
    """Compile the phone regex for a named policy, or ``override`` when given."""
    if override:
        return re.compile(override, re.ASCII)
    try:
        return re.compile(PHONE_POLICIES[policy], re.ASCII)
    except KeyError as exc:
        raise ValueError(f"unknown phone policy: {policy!r}") from exc


def normalise_email(email: str) -> str:
    return email.strip().lower()


def require_fields(**values: str | None) -> None:
    """Raise :class:`MissingField` naming every blank or absent value."""
    missing = [name for name, value in values.items() if value is None or not str(value).strip()]
    if missing:
        raise MissingField(fields=missing)


@dataclass(frozen=True)
class ValidationPolicy:
    """Bundle of the configurable field rules used by the account service."""

    phone_pattern: Pattern[str]
    password_min_length: int = 6

    @classmethod
    def from_settings(cls, settings) -> "ValidationPolicy":
        return cls(
            phone_pattern=phone_pattern_for(settings.phone_policy, settings.phone_pattern),
            password_min_length=settings.password_min_length,
        )

    def display_name(self, value: str) -> str:
        name = value.strip()
        if not DISPLAY_NAME_MIN <= len(name) <= DISPLAY_NAME_MAX:
            raise InvalidField(
                f"display name must be between {DISPLAY_NAME_MIN} and {DISPLAY_NAME_MAX} characters"
            )
        return name

    def email(self, value: str) -> str:
        email = normalise_email(value)
        if len(email) > EMAIL_MAX_LENGTH or not EMAIL_PATTERN.fullmatch(email):
            raise InvalidField("please provide a valid email address")
        return email

    def phone(self, value: str) -> str:
        phone = value.strip()
        if not self.phone_pattern.fullmatch(phone):
            raise InvalidField("please provide a valid phone number")
        return phone

    def new_password(self, password: str, confirmation: str) -> None:
        """Check a new password against its confirmation and the length floor."""
        if password != confirmation:
            raise PasswordMismatch()
        try:
            password.encode("utf-8")
        except UnicodeEncodeError as exc:
            # lone surrogates survive JSON decoding but cannot be hashed
            raise InvalidField("password contains invalid characters") from exc
        if len(password) < self.password_min_length:
            raise WeakPassword(
                f"password must be at least {self.password_min_length} characters"
            )
