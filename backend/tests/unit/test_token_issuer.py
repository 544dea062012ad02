"""Tests for TokenIssuer.

Covers issuance with supersession, collision retry and its cap,
validation order, and single use.
"""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.config import settings
from account_service.core.errors import ConflictError
from account_service.models import Account, TokenKind
from account_service.repositories.account_token_repository import (
    AccountTokenRepository,
)
from account_service.services.token_issuer import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenIssuanceError,
    TokenIssuer,
    TokenNotFoundError,
)

_T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _values(*values: str) -> Callable[[], str]:
    it: Iterator[str] = iter(values)
    return lambda: next(it)


class TestIssue:
    """Test TokenIssuer.issue()."""

    async def test_issues_unused_token_expiring_in_24_hours(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session, clock=_Clock(_T0))
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        assert len(token.value) == 64
        assert token.used is False
        assert token.kind is TokenKind.REGISTRATION
        assert token.expires_at == _T0 + timedelta(hours=24)

    async def test_reissue_supersedes_unused_token(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        first = await issuer.issue(unverified_account, TokenKind.REGISTRATION)
        first_value = first.value
        second = await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        assert second.value != first_value
        assert not await AccountTokenRepository.value_exists(db_session, first_value)
        assert (
            await AccountTokenRepository.count_unused(
                db_session,
                account_id=unverified_account.id,
                kind=TokenKind.REGISTRATION,
            )
            == 1
        )

    async def test_reissue_keeps_other_kinds(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        reset = await issuer.issue(unverified_account, TokenKind.PASSWORD_RESET)
        await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        assert await AccountTokenRepository.value_exists(db_session, reset.value)

    async def test_reissue_keeps_used_tokens(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        first = await issuer.issue(unverified_account, TokenKind.PASSWORD_RESET)
        await issuer.consume(first)
        await issuer.issue(unverified_account, TokenKind.PASSWORD_RESET)

        assert await AccountTokenRepository.value_exists(db_session, first.value)

    async def test_retries_on_value_collision(
        self,
        db_session: AsyncSession,
        unverified_account: Account,
        verified_account: Account,
    ):
        taken = "a" * 64
        await TokenIssuer(db_session, token_factory=_values(taken)).issue(
            verified_account, TokenKind.REGISTRATION
        )

        issuer = TokenIssuer(db_session, token_factory=_values(taken, taken, "b" * 64))
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        assert token.value == "b" * 64

    async def test_gives_up_after_max_attempts(
        self,
        db_session: AsyncSession,
        unverified_account: Account,
        verified_account: Account,
    ):
        taken = "a" * 64
        await TokenIssuer(db_session, token_factory=_values(taken)).issue(
            verified_account, TokenKind.REGISTRATION
        )
        settings.token_max_attempts = 3
        calls = []

        def always_taken() -> str:
            calls.append(1)
            return taken

        issuer = TokenIssuer(db_session, token_factory=always_taken)
        with pytest.raises(TokenIssuanceError):
            await issuer.issue(unverified_account, TokenKind.REGISTRATION)
        assert len(calls) == 3

    async def test_concurrent_live_token_is_a_conflict(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        account_id = unverified_account.id
        live = await TokenIssuer(db_session).issue(
            unverified_account, TokenKind.REGISTRATION
        )
        live_value = live.value
        await db_session.commit()

        # Another request inserted its token after this one's supersession ran
        with (
            patch.object(
                AccountTokenRepository, "delete_unused", AsyncMock(return_value=0)
            ),
            pytest.raises(ConflictError) as exc_info,
        ):
            await TokenIssuer(db_session).issue(
                unverified_account, TokenKind.REGISTRATION
            )
        assert exc_info.value.code == "TOKEN_ISSUE_CONFLICT"

        await db_session.rollback()
        tokens = await AccountTokenRepository.list_for_account(
            db_session, account_id, kind=TokenKind.REGISTRATION
        )
        assert [t.value for t in tokens] == [live_value]


class TestValidate:
    """Test TokenIssuer.validate()."""

    async def test_returns_valid_token(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        found = await issuer.validate(token.value, TokenKind.REGISTRATION)
        assert found.id == token.id

    async def test_unknown_value(self, db_session: AsyncSession):
        with pytest.raises(TokenNotFoundError):
            await TokenIssuer(db_session).validate("f" * 64)

    async def test_kind_mismatch_is_not_found(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        token = await issuer.issue(unverified_account, TokenKind.PASSWORD_RESET)

        with pytest.raises(TokenNotFoundError):
            await issuer.validate(token.value, TokenKind.REGISTRATION)

    async def test_expired_after_24_hours(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        clock = _Clock(_T0)
        issuer = TokenIssuer(db_session, clock=clock)
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)

        clock.now = _T0 + timedelta(hours=25)
        with pytest.raises(TokenExpiredError):
            await issuer.validate(token.value)

    async def test_second_use_is_rejected(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        issuer = TokenIssuer(db_session)
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)
        await issuer.consume(await issuer.validate(token.value))

        with pytest.raises(TokenAlreadyUsedError):
            await issuer.validate(token.value)

    async def test_expiry_checked_before_used_flag(
        self, db_session: AsyncSession, unverified_account: Account
    ):
        clock = _Clock(_T0)
        issuer = TokenIssuer(db_session, clock=clock)
        token = await issuer.issue(unverified_account, TokenKind.REGISTRATION)
        await issuer.consume(token)

        clock.now = _T0 + timedelta(days=2)
        with pytest.raises(TokenExpiredError):
            await issuer.validate(token.value)
