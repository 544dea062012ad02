"""Account token issuance, validation, and consumption.

Tokens prove control of an account's email address. Issuing a token for
an (account, kind) pair supersedes any unused token of the same kind, so
at most one live token exists per pair. Values are retried on collision
up to ``settings.token_max_attempts`` times.

The token errors below are domain exceptions, not HTTP errors. Callers
translate them into the outward signal for their flow.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.errors import APIError, ConflictError
from account_service.models.account import Account
from account_service.models.account_token import (
    AccountToken,
    TokenKind,
    generate_token_value,
)
from account_service.repositories.account_repository import AccountRepository
from account_service.repositories.account_token_repository import (
    AccountTokenRepository,
)

logger = logging.getLogger(__name__)


class TokenNotFoundError(Exception):
    """No token with this value (and kind, when one was expected)."""


class TokenExpiredError(Exception):
    """Token exists but its expiry has passed."""


class TokenAlreadyUsedError(Exception):
    """Token exists but was already consumed."""


class TokenIssuanceError(APIError):
    """Could not generate an unused token value (500)."""

    def __init__(self, message: str = "Could not issue a token") -> None:
        super().__init__(
            code="TOKEN_ISSUANCE_FAILED",
            message=message,
            status_code=500,
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenIssuer:
    """Creates, validates, and retires account tokens.

    Works inside the caller's transaction: nothing is committed here.

    Args:
        db: Async database session.
        clock: Returns the current time. Defaults to UTC now.
        token_factory: Generates candidate token values.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[], str] = generate_token_value,
    ) -> None:
        self._db = db
        self._clock = clock
        self._token_factory = token_factory

    def now(self) -> datetime:
        """Current time according to the issuer's clock."""
        return self._clock()

    async def issue(self, account: Account, kind: TokenKind) -> AccountToken:
        """Issue a fresh token, superseding the account's unused one.

        Args:
            account: Owning account (must already be flushed).
            kind: Token kind.

        Returns:
            The new, unused token.

        Raises:
            TokenIssuanceError: If every candidate value collided.
            ConflictError: If a concurrent request issued a token for the
                same (account, kind) first.
        """
        # Serializes concurrent issuance for this account
        await AccountRepository.lock(self._db, account.id)

        superseded = await AccountTokenRepository.delete_unused(
            self._db, account_id=account.id, kind=kind
        )
        if superseded:
            logger.info(
                "Superseded %d unused %s token(s) for account %s",
                superseded,
                kind.value,
                account.id,
            )

        value = await self._unused_value()
        token = AccountToken.build(
            account=account,
            kind=kind,
            value=value,
            now=self._clock(),
            ttl=timedelta(hours=settings.token_ttl_hours),
        )
        try:
            await AccountTokenRepository.add(self._db, token)
        except IntegrityError as exc:
            logger.warning(
                "Concurrent %s token issuance for account %s", kind.value, account.id
            )
            raise ConflictError(
                code="TOKEN_ISSUE_CONFLICT",
                message="Another request is already issuing this token",
            ) from exc

        logger.info("Issued %s token for account %s", kind.value, account.id)
        return token

    async def _unused_value(self) -> str:
        for _ in range(settings.token_max_attempts):
            candidate = self._token_factory()
            if not await AccountTokenRepository.value_exists(self._db, candidate):
                return candidate
            logger.warning("Token value collision, regenerating")
        logger.error(
            "No unused token value after %d attempts", settings.token_max_attempts
        )
        raise TokenIssuanceError()

    async def validate(
        self,
        value: str,
        expected_kind: TokenKind | None = None,
    ) -> AccountToken:
        """Resolve a token value to a usable token.

        Checks run in order: lookup, expiry, used flag.

        Args:
            value: Token value from the email link.
            expected_kind: Treat tokens of any other kind as not found.

        Returns:
            The matching token, with its account loaded.

        Raises:
            TokenNotFoundError: No token matches.
            TokenExpiredError: Token is past its expiry.
            TokenAlreadyUsedError: Token was already consumed.
        """
        token = await AccountTokenRepository.get_by_value(
            self._db, value, kind=expected_kind
        )
        if token is None:
            raise TokenNotFoundError
        if token.is_expired(self._clock()):
            raise TokenExpiredError
        if token.used:
            raise TokenAlreadyUsedError
        return token

    async def consume(self, token: AccountToken) -> None:
        """Mark a validated token as used. It can never be used again."""
        await AccountTokenRepository.mark_used(self._db, token)
        logger.info(
            "Consumed %s token for account %s", token.kind.value, token.account_id
        )
