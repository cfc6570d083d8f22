"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AccountView(BaseModel):
    """Public representation of an account.

    Carries no credential or reset-token fields; build it with
    :meth:`from_account` from any object exposing the listed attributes.
    """

    model_config = ConfigDict(extra="forbid")

    account_id: str
    display_name: str
    email: str
    phone: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Any) -> "AccountView":
        return cls(
            account_id=account.account_id,
            display_name=account.display_name,
            email=account.email,
            phone=account.phone,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
