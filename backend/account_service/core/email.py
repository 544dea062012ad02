"""Email sending via Resend API.

Simple HTTP POST to Resend for the confirmation and password-reset
emails. Plain-text format. Each email links back to the service with the
token in the query string.
"""

import logging
from typing import Protocol
from urllib.parse import quote, urlencode

import httpx

from account_service.core.config import settings
from account_service.core.errors import DeliveryError

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"

CONFIRM_ACCOUNT_PATH = "/confirmar-cuenta"
RESET_PASSWORD_PATH = "/restablecer-contrasena"  # nosec B105 - URL path


class UrlBuilder:
    """Builds absolute URLs on the service's public origin.

    Args:
        base_url: Public origin. Defaults to ``settings.public_url``.
    """

    def __init__(self, base_url: str | None = None) -> None:
        self._base_url = (base_url or settings.public_url).rstrip("/")

    def build(self, path: str, **params: str) -> str:
        """Join a path and query parameters onto the public origin."""
        url = f"{self._base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params, quote_via=quote)}"
        return url


class Mailer(Protocol):
    """Sends the account lifecycle emails."""

    async def send_confirmation(
        self, to_email: str, token_value: str, display_name: str
    ) -> None: ...

    async def send_password_reset(
        self, to_email: str, token_value: str, display_name: str
    ) -> None: ...


class ResendMailer:
    """Mailer backed by the Resend HTTP API.

    Args:
        url_builder: Builds the links embedded in emails.
        client: Shared HTTP client. A short-lived one is opened per send
            when omitted.
    """

    def __init__(
        self,
        url_builder: UrlBuilder | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._urls = url_builder or UrlBuilder()
        self._client = client

    async def send_confirmation(
        self, to_email: str, token_value: str, display_name: str
    ) -> None:
        """Send the email-confirmation link.

        Raises:
            DeliveryError: If Resend rejects or cannot be reached.
        """
        confirm_url = self._urls.build(CONFIRM_ACCOUNT_PATH, token=token_value)
        await self._send(
            to_email=to_email,
            subject="Confirm your account",
            text=(
                f"Hi {display_name},\n\n"
                f"Confirm your email address by opening this link:\n\n{confirm_url}\n\n"
                f"This link expires in {settings.token_ttl_hours} hours. "
                "If you didn't create an account, you can safely ignore this email."
            ),
            purpose="confirmation",
        )

    async def send_password_reset(
        self, to_email: str, token_value: str, display_name: str
    ) -> None:
        """Send the password-reset link.

        Raises:
            DeliveryError: If Resend rejects or cannot be reached.
        """
        reset_url = self._urls.build(RESET_PASSWORD_PATH, token=token_value)
        await self._send(
            to_email=to_email,
            subject="Reset your password",
            text=(
                f"Hi {display_name},\n\n"
                f"Choose a new password by opening this link:\n\n{reset_url}\n\n"
                f"This link expires in {settings.token_ttl_hours} hours. "
                "If you didn't request this, you can safely ignore this email."
            ),
            purpose="password_reset",
        )

    async def _send(self, *, to_email: str, subject: str, text: str, purpose: str) -> None:
        request_kwargs = {
            "headers": {
                "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
            },
            "json": {
                "from": settings.email_from,
                "to": to_email,
                "subject": subject,
                "text": text,
            },
            "timeout": settings.mail_timeout_seconds,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(_RESEND_API_URL, **request_kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(_RESEND_API_URL, **request_kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            # Security: the body holds the token link, never log it
            logger.warning("Failed to send %s email: %s", purpose, type(exc).__name__)
            raise DeliveryError() from exc

        logger.info("Sent %s email", purpose)
