"""HTTP route definitions for the account service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from schemas import AccountView

from ..domain.contracts import RegisterAccountInput
from ..domain.errors import (
    AccountError,
    DuplicateAccount,
    InvalidCredentials,
    InvalidField,
    InvalidOrExpiredToken,
    MissingField,
    NotificationFailed,
    PasswordMismatch,
    StoreUnavailable,
    WeakPassword,
)
from ..domain.service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

RESET_REQUESTED_MESSAGE = "If the email is registered, a password reset link has been sent."

_STATUS_BY_ERROR: dict[type[AccountError], int] = {
    MissingField: status.HTTP_400_BAD_REQUEST,
    InvalidField: status.HTTP_400_BAD_REQUEST,
    PasswordMismatch: status.HTTP_400_BAD_REQUEST,
    WeakPassword: status.HTTP_400_BAD_REQUEST,
    DuplicateAccount: status.HTTP_400_BAD_REQUEST,
    InvalidOrExpiredToken: status.HTTP_400_BAD_REQUEST,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    NotificationFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StoreUnavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class RegisterRequest(BaseModel):
    """Payload accepted when registering an account."""

    display_name: str | None = None
    email: str | None = None
    phone: str | None = None
    password: str | None = None
    password_confirmation: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: str | None = None


class ResetPasswordRequest(BaseModel):
    """New credentials submitted together with a reset token."""

    password: str | None = None
    password_confirmation: str | None = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class AccountEnvelope(MessageResponse):
    """Response wrapping a single account view."""

    account: AccountView


class AccountListResponse(BaseModel):
    success: bool = True
    count: int
    accounts: list[AccountView]


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


@router.post("/register", response_model=AccountEnvelope, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    service: AccountService = Depends(get_service),
) -> AccountEnvelope:
    """Create an account from the submitted profile and password."""
    try:
        account = service.register(
            RegisterAccountInput(
                display_name=payload.display_name,
                email=payload.email,
                phone=payload.phone,
                password=payload.password,
                password_confirmation=payload.password_confirmation,
            )
        )
    except AccountError as exc:
        raise _http_error_from_account_error(exc) from exc
    return AccountEnvelope(message="account created", account=AccountView.from_account(account))


@router.post("/login", response_model=AccountEnvelope)
def login(
    payload: LoginRequest,
    service: AccountService = Depends(get_service),
) -> AccountEnvelope:
    """Check credentials and return the matching account."""
    try:
        account = service.login(payload.email, payload.password)
    except AccountError as exc:
        raise _http_error_from_account_error(exc) from exc
    return AccountEnvelope(message="login successful", account=AccountView.from_account(account))


@router.get("/users", response_model=AccountListResponse)
def list_users(service: AccountService = Depends(get_service)) -> AccountListResponse:
    try:
        accounts = service.list_accounts()
    except AccountError as exc:
        raise _http_error_from_account_error(exc) from exc
    views = [AccountView.from_account(account) for account in accounts]
    return AccountListResponse(count=len(views), accounts=views)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    """Start a password reset.

    The response is identical whether or not the email is registered and
    whether or not the reset email could be delivered.
    """
    try:
        service.request_password_reset(payload.email)
    except NotificationFailed:
        logger.warning("password reset notification failed; returning generic response")
    except AccountError as exc:
        raise _http_error_from_account_error(exc) from exc
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.patch("/reset-password/{token}", response_model=MessageResponse)
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    """Redeem a reset token and set a new password."""
    try:
        service.complete_password_reset(token, payload.password, payload.password_confirmation)
    except AccountError as exc:
        raise _http_error_from_account_error(exc) from exc
    return MessageResponse(message="password reset successfully")


def _http_error_from_account_error(exc: AccountError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("account request failed: %s", exc.code)
    return HTTPException(status_code=status_code, detail=exc.message)
