"""CSRF protection for the account forms.

Double-submit design: a random nonce lives in an httpOnly cookie, and
each rendered form gets a signed JWT that binds the nonce to the form's
context (e.g. "forgot_password"). A submission is accepted only when the
token's signature, expiry, context, and nonce all match.
"""

import hmac
import logging
import secrets
import time

import jwt
from fastapi import Request, Response

from account_service.core.config import settings

logger = logging.getLogger(__name__)

_CSRF_ALGORITHM = "HS256"

# Form contexts
AUTHENTICATE = "authenticate"
REGISTER = "register"
RESEND_CONFIRMATION = "resend_confirmation"
FORGOT_PASSWORD = "forgot_password"  # nosec B105 - form name, not a password
RESET_PASSWORD = "reset_password"  # nosec B105 - form name, not a password


class CsrfValidator:
    """Issues and checks per-form CSRF tokens for one request.

    Args:
        request: Incoming request (source of the nonce cookie).
        response: Outgoing response (receives a new nonce cookie if needed).
    """

    def __init__(self, request: Request, response: Response) -> None:
        self._request = request
        self._response = response
        self._nonce: str | None = request.cookies.get(settings.csrf_cookie_name)

    def _ensure_nonce(self) -> str:
        if self._nonce:
            return self._nonce
        self._nonce = secrets.token_urlsafe(32)
        self._response.set_cookie(
            key=settings.csrf_cookie_name,
            value=self._nonce,
            httponly=True,
            secure=settings.auth_cookie_secure,
            samesite=settings.auth_cookie_samesite,
            path="/",
            domain=settings.auth_cookie_domain or None,
        )
        return self._nonce

    def issue(self, form_context: str) -> str:
        """Create a token for a form.

        Args:
            form_context: Name of the form the token is valid for.

        Returns:
            Signed token to embed in the form.
        """
        payload = {
            "ctx": form_context,
            "nonce": self._ensure_nonce(),
            "exp": int(time.time()) + settings.csrf_token_ttl_minutes * 60,
        }
        return jwt.encode(
            payload,
            settings.auth_secret.get_secret_value(),
            algorithm=_CSRF_ALGORITHM,
        )

    def check(self, form_context: str, submitted: str | None) -> bool:
        """Check a submitted token against the form context and nonce cookie.

        Args:
            form_context: Form the submission claims to come from.
            submitted: Value of the ``_csrf_token`` field.

        Returns:
            True if the token is valid for this form and browser.
        """
        if not submitted or not self._nonce:
            return False
        try:
            payload = jwt.decode(
                submitted,
                settings.auth_secret.get_secret_value(),
                algorithms=[_CSRF_ALGORITHM],
            )
        except jwt.InvalidTokenError:
            return False

        if payload.get("ctx") != form_context:
            logger.info("CSRF token submitted for the wrong form")
            return False
        return hmac.compare_digest(str(payload.get("nonce", "")), self._nonce)
