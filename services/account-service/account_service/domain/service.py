"""Account service orchestrating registration, login and password resets."""

from __future__ import annotations

import logging
from functools import lru_cache
from html import escape

from prometheus_client import Counter

from .account import Account
from .contracts import NewAccountRecord, RegisterAccountInput
from .errors import DuplicateAccount, InvalidCredentials, NotificationFailed
from .validation import ValidationPolicy, require_fields
from ..config import get_settings
from ..notifications import Notifier
from ..repository import AccountRepository, DuplicateKeyError
from ..security.passwords import hash_password, verify_password
from ..security.reset_tokens import ResetTokenService

logger = logging.getLogger(__name__)

REGISTRATIONS = Counter("account_registrations_total", "Accounts created")
LOGIN_ATTEMPTS = Counter("account_login_attempts_total", "Login attempts", ["outcome"])
RESET_REQUESTS = Counter("password_reset_requests_total", "Password reset requests", ["outcome"])

RESET_SUBJECT = "Password reset"


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Hash checked for unknown emails so both login failures cost one bcrypt verify."""
    return hash_password("account-service-timing-equaliser")


class AccountService:
    """Account workflows backed by the credential store.

    Holds no per-request state; every decision is taken from what the
    repository returns, so any number of instances can serve concurrently.
    """

    def __init__(
        self,
        repository: AccountRepository,
        notifier: Notifier,
        *,
        reset_tokens: ResetTokenService | None = None,
        policy: ValidationPolicy | None = None,
        frontend_url: str | None = None,
    ) -> None:
        """Store dependencies used to orchestrate persistence, hashing and notification."""
        settings = get_settings()
        self._repository = repository
        self._notifier = notifier
        self._reset_tokens = reset_tokens or ResetTokenService(
            repository, ttl_seconds=settings.reset_token_ttl_seconds
        )
        self._policy = policy or ValidationPolicy.from_settings(settings)
        self._frontend_url = (frontend_url or settings.frontend_url).rstrip("/")
        self._reset_ttl_minutes = settings.reset_token_ttl_seconds // 60

    def register(self, payload: RegisterAccountInput) -> Account:
        """Validate and persist a new account, hashing its password first."""
        require_fields(
            display_name=payload.display_name,
            email=payload.email,
            phone=payload.phone,
            password=payload.password,
            password_confirmation=payload.password_confirmation,
        )
        self._policy.new_password(payload.password, payload.password_confirmation)
        record = NewAccountRecord(
            display_name=self._policy.display_name(payload.display_name),
            email=self._policy.email(payload.email),
            phone=self._policy.phone(payload.phone),
            password_hash="",
        )

        if self._repository.find_by_email(record.email) is not None:
            raise DuplicateAccount()

        record.password_hash = hash_password(payload.password)
        try:
            account = self._repository.insert(record)
        except DuplicateKeyError as exc:
            logger.warning("concurrent registration lost unique race")
            raise DuplicateAccount() from exc

        REGISTRATIONS.inc()
        logger.info("account %s registered", account.account_id)
        return account

    def login(self, email: str | None, password: str | None) -> Account:
        """Return the account when ``email``/``password`` match, else ``InvalidCredentials``."""
        require_fields(email=email, password=password)
        account = self._repository.find_by_email(email)
        if account is None:
            verify_password(password, _dummy_hash())
            LOGIN_ATTEMPTS.labels(outcome="rejected").inc()
            raise InvalidCredentials()
        if not verify_password(password, account.password_hash):
            LOGIN_ATTEMPTS.labels(outcome="rejected").inc()
            raise InvalidCredentials()
        LOGIN_ATTEMPTS.labels(outcome="accepted").inc()
        return account

    def list_accounts(self) -> list[Account]:
        return self._repository.list_accounts()

    def request_password_reset(self, email: str | None) -> None:
        """Email a reset link to ``email`` if it belongs to an account.

        Unknown addresses return normally so callers cannot probe which emails
        are registered. If delivery fails the pending token is rolled back and
        :class:`NotificationFailed` is raised for the caller to log; the HTTP
        layer still answers with the generic response.
        """
        require_fields(email=email)
        account = self._repository.find_by_email(email)
        if account is None:
            RESET_REQUESTS.labels(outcome="unknown").inc()
            return

        token = self._reset_tokens.issue(account)
        link = f"{self._frontend_url}/reset-password/{token}"
        body_text, body_html = self._reset_message(link)
        try:
            self._notifier.send(account.email, RESET_SUBJECT, body_text, body_html)
        except NotificationFailed:
            self._reset_tokens.rollback(account, token)
            RESET_REQUESTS.labels(outcome="notification_failed").inc()
            logger.warning("reset email failed for account %s; token rolled back", account.account_id)
            raise
        RESET_REQUESTS.labels(outcome="sent").inc()

    def complete_password_reset(
        self,
        token: str | None,
        new_password: str | None,
        password_confirmation: str | None,
    ) -> Account:
        """Replace the password of the account holding ``token``."""
        require_fields(
            token=token, password=new_password, password_confirmation=password_confirmation
        )
        self._policy.new_password(new_password, password_confirmation)
        return self._reset_tokens.consume(token, new_password)

    def _reset_message(self, link: str) -> tuple[str, str]:
        ttl = self._reset_ttl_minutes
        text = (
            "You requested a password reset. Use the link below to choose a new password:\n"
            f"{link}\n\nThis link is valid for {ttl} minutes."
        )
        safe = escape(link, quote=True)
        html = (
            "<p>You requested a password reset.</p>"
            f'<p>Use the link below to choose a new password: <a href="{safe}">{safe}</a></p>'
            f"<p>This link is valid for {ttl} minutes.</p>"
        )
        return text, html
