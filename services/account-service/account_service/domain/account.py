from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered user, including credential material.

    Instances never leave the service boundary; the HTTP layer converts them
    to :class:`schemas.AccountView`.
    """

    account_id: str
    display_name: str
    email: str
    phone: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    reset_token_hash: str | None = None
    reset_token_expiry: datetime | None = None

    @property
    def has_pending_reset(self) -> bool:
        return self.reset_token_hash is not None and self.reset_token_expiry is not None
