"""Account endpoints: login, registration, confirmation, password reset.

Each form has a GET that hands out a CSRF token bound to the form and a
POST that processes it. Every endpoint except logout sends an already
logged-in visitor home.

Security considerations:
- login: constant-time comparison via DUMMY_HASH prevents user enumeration
- forgot-password: same response whether or not the email is registered
- resend-confirmation: does report unknown emails
- tokens: single use, 24h expiry, superseded on reissue
"""

import bcrypt
from fastapi import APIRouter
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from account_service.api.deps import (
    CurrentAccount,
    Csrf,
    DbSession,
    Gate,
    Hasher,
    Lifecycle,
    Sessions,
)
from account_service.core import csrf
from account_service.core.config import settings
from account_service.core.csrf import CsrfValidator
from account_service.core.email import CONFIRM_ACCOUNT_PATH, RESET_PASSWORD_PATH
from account_service.core.errors import (
    AccountNotFoundError,
    CsrfError,
    DuplicateEmailError,
    InvalidCredentialsError,
    ValidationError,
)
from account_service.core.responses import DataResponse, FlashMessage, FormPage
from account_service.core.security import (
    DUMMY_HASH,
    PASSWORD_MAX_BYTES,
    CookieSessionManager,
)
from account_service.repositories.account_repository import AccountRepository
from account_service.services.account_lifecycle import ResendOutcome

REGISTER_PATH = "/registro"
RESEND_CONFIRMATION_PATH = "/reenviar-confirmacion"
FORGOT_PASSWORD_PATH = "/recuperar-contrasena"  # nosec B105 - URL path

_FORGOT_PASSWORD_MSG = (
    "If the email is registered, you will receive a link to reset your password."
)

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=180)
    password: str = Field(min_length=1, max_length=128)
    remember_me: bool = False
    csrf_token: str | None = Field(None, alias="_csrf_token")


class RegisterRequest(BaseModel):
    """Request body for POST /registro."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=255)
    email: str = Field(max_length=180)
    password: str = Field(max_length=PASSWORD_MAX_BYTES)
    csrf_token: str | None = Field(None, alias="_csrf_token")


class EmailFormRequest(BaseModel):
    """Request body for POST /reenviar-confirmacion and /recuperar-contrasena."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field("", max_length=180)
    csrf_token: str | None = Field(None, alias="_csrf_token")


class ResetPasswordRequest(BaseModel):
    """Request body for POST /restablecer-contrasena."""

    model_config = ConfigDict(extra="forbid")

    password: str = Field("", max_length=PASSWORD_MAX_BYTES)
    confirm_password: str = Field("", max_length=PASSWORD_MAX_BYTES)
    csrf_token: str | None = Field(None, alias="_csrf_token")


# ===================================================================
# Helpers
# ===================================================================


def _home() -> RedirectResponse:
    return RedirectResponse(url=settings.home_path, status_code=303)


def _form_page(
    validator: CsrfValidator, form: str, token: str | None = None
) -> DataResponse[FormPage]:
    return DataResponse(
        data=FormPage(form=form, csrf_token=validator.issue(form), token=token)
    )


def _require_csrf(
    validator: CsrfValidator, form: str, submitted: str | None, form_url: str
) -> None:
    if not validator.check(form, submitted):
        raise CsrfError().redirect_to(form_url)


def _flash(level: str, message: str, redirect_to: str) -> DataResponse[FlashMessage]:
    return DataResponse(
        data=FlashMessage(level=level, message=message, redirect_to=redirect_to)
    )


def _reset_form_url(token: str) -> str:
    return f"{RESET_PASSWORD_PATH}?token={token}"


# ===================================================================
# Login / logout
# ===================================================================


@router.get("/login", response_model=None)
async def login_form(
    current: CurrentAccount, validator: Csrf
) -> DataResponse[FormPage] | RedirectResponse:
    """Login form data."""
    if current is not None:
        return _home()
    return _form_page(validator, csrf.AUTHENTICATE)


@router.post("/login", response_model=None)
async def login(
    body: LoginRequest,
    current: CurrentAccount,
    validator: Csrf,
    db: DbSession,
    hasher: Hasher,
    gate: Gate,
    sessions: Sessions,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Authenticate with email and password.

    Order: account lookup, status gate, password check, post gate. An
    unverified account is refused before its password is checked.
    """
    if current is not None:
        return _home()
    _require_csrf(validator, csrf.AUTHENTICATE, body.csrf_token, settings.login_path)
    if len(body.password.encode()) > PASSWORD_MAX_BYTES:
        # No stored hash can match input bcrypt refuses
        raise InvalidCredentialsError()

    account = await AccountRepository.get_by_email(db, body.email)
    if account is None:
        # Security: always perform bcrypt comparison to prevent timing attacks.
        bcrypt.checkpw(body.password.encode(), DUMMY_HASH)
        raise InvalidCredentialsError()

    gate.check_pre_authentication(account)
    if not hasher.verify(account, body.password):
        raise InvalidCredentialsError()
    gate.check_post_authentication(account)

    sessions.establish(account, persistent=body.remember_me)
    return _flash("success", "You are now signed in.", settings.home_path)


@router.get("/logout")
async def logout() -> RedirectResponse:
    """Clear the session cookie and go to the login page."""
    redirect = RedirectResponse(url=settings.login_path, status_code=303)
    CookieSessionManager(redirect).end()
    return redirect


# ===================================================================
# Registration
# ===================================================================


@router.get(REGISTER_PATH, response_model=None)
async def register_form(
    current: CurrentAccount, validator: Csrf
) -> DataResponse[FormPage] | RedirectResponse:
    """Registration form data."""
    if current is not None:
        return _home()
    return _form_page(validator, csrf.REGISTER)


@router.post(REGISTER_PATH, status_code=201, response_model=None)
async def register(
    body: RegisterRequest,
    current: CurrentAccount,
    validator: Csrf,
    lifecycle: Lifecycle,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Create an account and email its confirmation link."""
    if current is not None:
        return _home()
    _require_csrf(validator, csrf.REGISTER, body.csrf_token, REGISTER_PATH)

    try:
        await lifecycle.register(body.name, body.email, body.password)
    except (ValidationError, DuplicateEmailError) as exc:
        raise exc.redirect_to(REGISTER_PATH) from None

    return _flash(
        "success",
        "Registered. Confirm your email to be able to sign in.",
        settings.login_path,
    )


@router.get(CONFIRM_ACCOUNT_PATH, response_model=None)
async def confirm_account(
    current: CurrentAccount,
    lifecycle: Lifecycle,
    token: str | None = None,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Confirm the email behind a registration token and sign in.

    The session is persistent (remember-me).
    """
    if current is not None:
        return _home()

    await lifecycle.confirm_email(token)
    return _flash(
        "success",
        "Your account has been confirmed. You are now signed in.",
        settings.home_path,
    )


@router.get(RESEND_CONFIRMATION_PATH, response_model=None)
async def resend_confirmation_form(
    current: CurrentAccount, validator: Csrf
) -> DataResponse[FormPage] | RedirectResponse:
    """Resend-confirmation form data."""
    if current is not None:
        return _home()
    return _form_page(validator, csrf.RESEND_CONFIRMATION)


@router.post(RESEND_CONFIRMATION_PATH, response_model=None)
async def resend_confirmation(
    body: EmailFormRequest,
    current: CurrentAccount,
    validator: Csrf,
    lifecycle: Lifecycle,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Send a new confirmation link, superseding the previous one."""
    if current is not None:
        return _home()
    _require_csrf(
        validator, csrf.RESEND_CONFIRMATION, body.csrf_token, RESEND_CONFIRMATION_PATH
    )

    try:
        outcome = await lifecycle.resend_confirmation(body.email)
    except (ValidationError, AccountNotFoundError) as exc:
        raise exc.redirect_to(RESEND_CONFIRMATION_PATH) from None

    if outcome is ResendOutcome.ALREADY_VERIFIED:
        return _flash(
            "warning",
            "Your account is already confirmed. You can sign in.",
            settings.login_path,
        )
    return _flash(
        "success", "We sent you a new confirmation email.", settings.login_path
    )


# ===================================================================
# Password reset
# ===================================================================


@router.get(FORGOT_PASSWORD_PATH, response_model=None)
async def forgot_password_form(
    current: CurrentAccount, validator: Csrf
) -> DataResponse[FormPage] | RedirectResponse:
    """Forgot-password form data."""
    if current is not None:
        return _home()
    return _form_page(validator, csrf.FORGOT_PASSWORD)


@router.post(FORGOT_PASSWORD_PATH, response_model=None)
async def forgot_password(
    body: EmailFormRequest,
    current: CurrentAccount,
    validator: Csrf,
    lifecycle: Lifecycle,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Email a reset link.

    Security: Same response for registered and unknown emails.
    """
    if current is not None:
        return _home()
    _require_csrf(validator, csrf.FORGOT_PASSWORD, body.csrf_token, FORGOT_PASSWORD_PATH)

    try:
        await lifecycle.forgot_password(body.email)
    except ValidationError as exc:
        raise exc.redirect_to(FORGOT_PASSWORD_PATH) from None

    return _flash("success", _FORGOT_PASSWORD_MSG, settings.login_path)


@router.get(RESET_PASSWORD_PATH, response_model=None)
async def reset_password_form(
    current: CurrentAccount,
    validator: Csrf,
    lifecycle: Lifecycle,
    token: str | None = None,
) -> DataResponse[FormPage] | RedirectResponse:
    """Reset form data. Fails unless the token is an unused reset token."""
    if current is not None:
        return _home()

    reset_token = await lifecycle.check_reset_token(token)
    return _form_page(validator, csrf.RESET_PASSWORD, token=reset_token.value)


@router.post(RESET_PASSWORD_PATH, response_model=None)
async def reset_password(
    body: ResetPasswordRequest,
    current: CurrentAccount,
    validator: Csrf,
    lifecycle: Lifecycle,
    token: str | None = None,
) -> DataResponse[FlashMessage] | RedirectResponse:
    """Set a new password with a reset token."""
    if current is not None:
        return _home()

    reset_token = await lifecycle.check_reset_token(token)
    form_url = _reset_form_url(reset_token.value)
    _require_csrf(validator, csrf.RESET_PASSWORD, body.csrf_token, form_url)

    try:
        await lifecycle.reset_password(token, body.password, body.confirm_password)
    except ValidationError as exc:
        raise exc.redirect_to(form_url) from None

    return _flash(
        "success",
        "Your password has been reset. You can now sign in.",
        settings.login_path,
    )
