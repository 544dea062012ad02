"""Account lifecycle: registration, email confirmation, and password reset.

State per account:
- (none) --register--> Unverified
- Unverified --confirm_email--> Verified (and logged in)
- Unverified --resend_confirmation--> Unverified (new token, old one superseded)
- any --forgot_password / reset_password--> unchanged status

Transactions: every operation runs in the caller's session. Changes are
flushed, the email is sent, and only then is the transaction committed.
A failed delivery rolls everything back, superseded tokens included.
"""

import enum
import logging
from collections.abc import Awaitable

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.email import Mailer
from account_service.core.errors import (
    AccessDeniedError,
    AccountNotFoundError,
    DeliveryError,
    DuplicateEmailError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from account_service.core.security import (
    PASSWORD_MAX_BYTES,
    AuthSessionManager,
    PasswordHasher,
)
from account_service.models.account import ROLE_USER, Account
from account_service.models.account_token import AccountToken, TokenKind
from account_service.repositories.account_repository import AccountRepository
from account_service.repositories.account_token_repository import (
    AccountTokenRepository,
)
from account_service.services.token_issuer import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenIssuer,
    TokenNotFoundError,
)

logger = logging.getLogger(__name__)


class ResendOutcome(enum.Enum):
    """Result of a resend-confirmation request."""

    SENT = "sent"
    ALREADY_VERIFIED = "already_verified"


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _password_error(raw_password: str) -> str | None:
    if len(raw_password) < settings.password_min_length:
        return f"Password must be at least {settings.password_min_length} characters"
    if len(raw_password.encode()) > PASSWORD_MAX_BYTES:
        return f"Password must be at most {PASSWORD_MAX_BYTES} bytes"
    return None


class AccountLifecycle:
    """Orchestrates the account lifecycle flows.

    Args:
        db: Async database session for the request.
        mailer: Sends confirmation and reset emails.
        hasher: Hashes new passwords.
        sessions: Logs the account in after confirmation.
        tokens: Token issuer. Defaults to one bound to ``db``.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        mailer: Mailer,
        hasher: PasswordHasher,
        sessions: AuthSessionManager,
        tokens: TokenIssuer | None = None,
    ) -> None:
        self._db = db
        self._mailer = mailer
        self._hasher = hasher
        self._sessions = sessions
        self._tokens = tokens or TokenIssuer(db)

    # =================================================================
    # Registration
    # =================================================================

    async def register(self, name: str, email: str, raw_password: str) -> Account:
        """Create an unverified account and email its confirmation link.

        Args:
            name: Display name (at least 2 characters after trimming).
            email: Login email address.
            raw_password: Plaintext password (6 characters to 72 bytes).

        Returns:
            The new, unverified account.

        Raises:
            ValidationError: If any field is invalid.
            DuplicateEmailError: If the email is already registered.
            DeliveryError: If the confirmation email could not be sent.
        """
        name = name.strip()
        errors: list[dict] = []
        if len(name) < settings.name_min_length:
            errors.append(
                {
                    "field": "name",
                    "message": f"Name must be at least {settings.name_min_length} characters",
                }
            )
        try:
            email = validate_email(email.strip(), check_deliverability=False).normalized
        except EmailNotValidError:
            errors.append({"field": "email", "message": "Invalid email address"})
        password_error = _password_error(raw_password)
        if password_error:
            errors.append({"field": "password", "message": password_error})
        if errors:
            raise ValidationError("Invalid registration data", details=errors)

        email = _normalize_email(email)
        if await AccountRepository.get_by_email(self._db, email) is not None:
            raise DuplicateEmailError()

        try:
            account = await AccountRepository.create(
                self._db,
                name=name,
                email=email,
                password_hash=self._hasher.hash(None, raw_password),
                roles=[ROLE_USER],
            )
        except IntegrityError as exc:
            # Concurrent registration with the same email won the race
            await self._db.rollback()
            raise DuplicateEmailError() from exc

        token = await self._tokens.issue(account, TokenKind.REGISTRATION)
        await self._deliver(
            self._mailer.send_confirmation(account.email, token.value, account.name)
        )
        logger.info("Registered account %s", account.id)
        return account

    # =================================================================
    # Email confirmation
    # =================================================================

    async def confirm_email(self, value: str | None) -> Account:
        """Verify the account behind a registration token and log it in.

        Args:
            value: Token value from the confirmation link.

        Returns:
            The now-verified account.

        Raises:
            NotFoundError: If no token value was supplied.
            InvalidTokenError: If the token is unknown, not a registration
                token, or already used.
            AccessDeniedError: If the token has expired.
        """
        if not value:
            raise NotFoundError("Missing confirmation token")

        try:
            token = await self._tokens.validate(value, TokenKind.REGISTRATION)
        except (TokenNotFoundError, TokenAlreadyUsedError) as exc:
            raise InvalidTokenError("This confirmation link is not valid") from exc
        except TokenExpiredError as exc:
            raise AccessDeniedError("This confirmation link has expired") from exc

        account = token.account
        await AccountRepository.mark_verified(self._db, account)
        await self._tokens.consume(token)
        await self._db.commit()
        logger.info("Confirmed email for account %s", account.id)

        self._sessions.establish(account, persistent=True)
        return account

    async def resend_confirmation(self, email: str) -> ResendOutcome:
        """Issue a fresh confirmation link, superseding the previous one.

        Unlike forgot_password, this reports unknown emails.

        Args:
            email: Email the account registered with.

        Returns:
            SENT, or ALREADY_VERIFIED when there is nothing to confirm.

        Raises:
            ValidationError: If the email is empty.
            AccountNotFoundError: If no account uses this email.
            DeliveryError: If the email could not be sent.
        """
        if not email or not email.strip():
            raise ValidationError("Email is required")

        account = await AccountRepository.get_by_email(self._db, email)
        if account is None:
            raise AccountNotFoundError()
        if account.verified:
            return ResendOutcome.ALREADY_VERIFIED

        token = await self._tokens.issue(account, TokenKind.REGISTRATION)
        await self._deliver(
            self._mailer.send_confirmation(account.email, token.value, account.name)
        )
        return ResendOutcome.SENT

    # =================================================================
    # Password reset
    # =================================================================

    async def forgot_password(self, email: str) -> None:
        """Email a password-reset link if the account exists.

        Unknown emails are silently ignored so the response never
        reveals whether an account exists.

        Raises:
            ValidationError: If the email is empty.
            DeliveryError: If the email could not be sent.
        """
        if not email or not email.strip():
            raise ValidationError("Email is required")

        account = await AccountRepository.get_by_email(self._db, email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return

        token = await self._tokens.issue(account, TokenKind.PASSWORD_RESET)
        await self._deliver(
            self._mailer.send_password_reset(account.email, token.value, account.name)
        )

    async def check_reset_token(self, value: str | None) -> AccountToken:
        """Resolve an unused password-reset token.

        Raises:
            NotFoundError: If no token value was supplied.
            InvalidTokenError: If no unused reset token has this value.
            AccessDeniedError: If the token has expired.
        """
        if not value:
            raise NotFoundError("Missing reset token")

        token = await AccountTokenRepository.get_by_value(
            self._db, value, kind=TokenKind.PASSWORD_RESET, unused_only=True
        )
        if token is None:
            raise InvalidTokenError("This reset link is not valid")
        if token.is_expired(self._tokens.now()):
            raise AccessDeniedError("This reset link has expired")
        return token

    async def reset_password(
        self,
        value: str | None,
        new_password: str,
        confirm_password: str,
    ) -> Account:
        """Set a new password using a reset token.

        The token stays unused when the new password is rejected.

        Raises:
            NotFoundError: If no token value was supplied.
            InvalidTokenError: If the token is unknown or already used.
            AccessDeniedError: If the token has expired.
            ValidationError: If the password is too short, too long, or
                the two entries differ.
        """
        token = await self.check_reset_token(value)

        password_error = _password_error(new_password)
        if password_error:
            raise ValidationError(password_error, details=[{"field": "password"}])
        if new_password != confirm_password:
            raise ValidationError(
                "Passwords do not match",
                details=[{"field": "confirm_password"}],
            )

        account = token.account
        await AccountRepository.update(
            self._db,
            account,
            password_hash=self._hasher.hash(account, new_password),
        )
        await self._tokens.consume(token)
        await self._db.commit()
        logger.info("Password reset for account %s", account.id)
        return account

    # =================================================================
    # Helpers
    # =================================================================

    async def _deliver(self, send: Awaitable[None]) -> None:
        """Send an email, then commit. Roll back if delivery fails."""
        try:
            await send
        except DeliveryError:
            await self._db.rollback()
            raise
        await self._db.commit()
