"""Shared dependencies for API endpoints.

Builds the per-request collaborators (session, mailer, hasher, CSRF,
lifecycle service) and resolves the optional current account from the
session cookie. Override these in tests via ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.csrf import CsrfValidator
from account_service.core.database import get_db
from account_service.core.email import Mailer, ResendMailer
from account_service.core.security import (
    BcryptPasswordHasher,
    CookieSessionManager,
    PasswordHasher,
    decode_session_jwt,
)
from account_service.models.account import Account
from account_service.repositories.account_repository import AccountRepository
from account_service.services.account_lifecycle import AccountLifecycle
from account_service.services.auth_gate import AuthGate


async def get_current_account(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Account | None:
    """Get the logged-in account, if any.

    Security: A missing, invalid, or expired cookie and a deleted account
    all resolve to anonymous. Never report which.

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session (injected).

    Returns:
        The session's Account, or None when anonymous.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        return None

    account_id = decode_session_jwt(token, settings.auth_secret.get_secret_value())
    if account_id is None:
        return None
    return await AccountRepository.get_by_id(db, account_id)


def get_mailer() -> Mailer:
    """Mailer used for lifecycle emails."""
    return ResendMailer()


def get_password_hasher() -> PasswordHasher:
    """Password hasher for new and existing accounts."""
    return BcryptPasswordHasher()


def get_csrf_validator(request: Request, response: Response) -> CsrfValidator:
    """CSRF validator bound to this request's nonce cookie."""
    return CsrfValidator(request, response)


def get_session_manager(response: Response) -> CookieSessionManager:
    """Session manager writing to this request's response."""
    return CookieSessionManager(response)


def get_auth_gate() -> AuthGate:
    """Account status gate for logins."""
    return AuthGate()


def get_account_lifecycle(
    db: Annotated[AsyncSession, Depends(get_db)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    sessions: Annotated[CookieSessionManager, Depends(get_session_manager)],
) -> AccountLifecycle:
    """Lifecycle service wired to this request's collaborators."""
    return AccountLifecycle(db, mailer=mailer, hasher=hasher, sessions=sessions)


# Type aliases for cleaner endpoint signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentAccount = Annotated[Account | None, Depends(get_current_account)]
Csrf = Annotated[CsrfValidator, Depends(get_csrf_validator)]
Hasher = Annotated[PasswordHasher, Depends(get_password_hasher)]
Sessions = Annotated[CookieSessionManager, Depends(get_session_manager)]
Gate = Annotated[AuthGate, Depends(get_auth_gate)]
Lifecycle = Annotated[AccountLifecycle, Depends(get_account_lifecycle)]
