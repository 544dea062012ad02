"""Password hashing, JWT creation, and session cookie management.

Shared utilities used by the account endpoints and services.

Pipeline:
- BcryptPasswordHasher: opaque password hashes for accounts
- create_jwt / decode_session_jwt: signed session tokens
- CookieSessionManager: establishes / ends the httpOnly session cookie
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Protocol

import bcrypt
import jwt
from fastapi import Response

from account_service.core.config import settings
from account_service.models.account import Account

logger = logging.getLogger(__name__)

_JWT_ALGORITHM = "HS256"
_JWT_AUDIENCE = "account-service"

# Pre-computed bcrypt hash for timing-safe comparison on account-not-found.
# Security: prevents account enumeration via response time differences.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"

# bcrypt only reads the first 72 bytes and refuses longer input
PASSWORD_MAX_BYTES = 72


# ===================================================================
# Password hashing
# ===================================================================


class PasswordHasher(Protocol):
    """Produces and checks opaque password hashes."""

    def hash(self, account: Account | None, raw_password: str) -> str: ...

    def verify(self, account: Account, raw_password: str) -> bool: ...


class BcryptPasswordHasher:
    """bcrypt implementation of PasswordHasher.

    Args:
        rounds: bcrypt cost factor. Defaults to ``settings.bcrypt_rounds``.
    """

    def __init__(self, rounds: int | None = None) -> None:
        self._rounds = rounds or settings.bcrypt_rounds

    def hash(self, account: Account | None, raw_password: str) -> str:  # noqa: ARG002
        """Hash a password.

        The account is part of the contract so hashers may salt or pick
        an algorithm per account; bcrypt does not need it.
        """
        return bcrypt.hashpw(
            raw_password.encode(), bcrypt.gensalt(rounds=self._rounds)
        ).decode()

    def verify(self, account: Account, raw_password: str) -> bool:
        """Check a password against the account's stored hash."""
        if len(raw_password.encode()) > PASSWORD_MAX_BYTES:
            return False
        return bcrypt.checkpw(raw_password.encode(), account.password_hash.encode())


# ===================================================================
# Session JWT
# ===================================================================


def create_jwt(
    *,
    account_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        account_id: Account UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the session TTL.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": account_id,
        "aud": _JWT_AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(minutes=settings.session_ttl_minutes)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALGORITHM)


def decode_session_jwt(token: str, secret: str) -> uuid.UUID | None:
    """Validate a session JWT and return its subject.

    Security: Never report why validation failed.

    Args:
        token: Encoded JWT from the session cookie.
        secret: HMAC signing secret.

    Returns:
        Account UUID if the token is valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALGORITHM],
            audience=_JWT_AUDIENCE,
            issuer=settings.auth_issuer,
        )
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


class AuthSessionManager(Protocol):
    """Establishes and ends an authenticated session for an account."""

    def establish(self, account: Account, *, persistent: bool) -> None: ...

    def end(self) -> None: ...


class CookieSessionManager:
    """Session stored as a signed JWT in an httpOnly cookie.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: Response the cookie is written to.
    """

    def __init__(self, response: Response) -> None:
        self._response = response

    def establish(self, account: Account, *, persistent: bool) -> None:
        """Log the account in.

        Args:
            account: Authenticated account.
            persistent: Remember-me. Issues a long-lived cookie instead of
                a browser-session cookie.
        """
        if persistent:
            lifetime = timedelta(days=settings.remember_me_ttl_days)
        else:
            lifetime = timedelta(minutes=settings.session_ttl_minutes)

        token = create_jwt(
            account_id=str(account.id),
            secret=settings.auth_secret.get_secret_value(),
            expires_delta=lifetime,
        )
        self._response.set_cookie(
            key=settings.auth_cookie_name,
            value=token,
            httponly=True,
            secure=settings.auth_cookie_secure,
            samesite=settings.auth_cookie_samesite,
            path="/",
            max_age=int(lifetime.total_seconds()) if persistent else None,
            domain=settings.auth_cookie_domain or None,
        )
        logger.info(
            "Session established",
            extra={"account_id": str(account.id), "persistent": persistent},
        )

    def end(self) -> None:
        """Clear the session cookie.

        Cookie attributes must match establish() for browser to delete.
        """
        self._response.delete_cookie(
            key=settings.auth_cookie_name,
            path="/",
            httponly=True,
            secure=settings.auth_cookie_secure,
            samesite=settings.auth_cookie_samesite,
            domain=settings.auth_cookie_domain or None,
        )
