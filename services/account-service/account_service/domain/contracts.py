"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RegisterAccountInput:
    """Raw registration inputs; validation happens in the account service."""

    display_name: str | None
    email: str | None
    phone: str | None
    password: str | None
    password_confirmation: str | None


@dataclass(slots=True)
class NewAccountRecord:
    """Validated, normalised values handed to the repository for insertion."""

    display_name: str
    email: str
    phone: str
    password_hash: str
