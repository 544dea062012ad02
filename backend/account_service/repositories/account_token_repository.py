"""Repository for AccountToken CRUD operations.

Token store for single-use registration and password-reset tokens.
Lookups are by token value, which is unique across all kinds.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.models.account_token import AccountToken, TokenKind


class AccountTokenRepository:
    """Stateless repository for AccountToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def add(db: AsyncSession, token: AccountToken) -> AccountToken:
        """Persist a newly built token.

        Args:
            db: Async database session.
            token: Transient token from ``AccountToken.build``.

        Returns:
            The persisted token.

        Raises:
            sqlalchemy.exc.IntegrityError: If the value is taken or the
                account already has an unused token of this kind.
        """
        db.add(token)
        await db.flush()
        return token

    @staticmethod
    async def get_by_value(
        db: AsyncSession,
        value: str,
        *,
        kind: TokenKind | None = None,
        unused_only: bool = False,
    ) -> AccountToken | None:
        """Look up a token by value.

        Args:
            db: Async database session.
            value: Token value from the email link.
            kind: Restrict to this kind when given.
            unused_only: Skip tokens that were already consumed.

        Returns:
            AccountToken (with its account loaded) if found, None otherwise.
        """
        stmt = select(AccountToken).where(AccountToken.value == value)
        if kind is not None:
            stmt = stmt.where(AccountToken.kind == kind)
        if unused_only:
            stmt = stmt.where(AccountToken.used.is_(False))
        result = await db.execute(stmt)
        return result.unique().scalar_one_or_none()

    @staticmethod
    async def value_exists(db: AsyncSession, value: str) -> bool:
        """Check whether any token (of any kind or state) has this value.

        Args:
            db: Async database session.
            value: Candidate token value.

        Returns:
            True if the value is already stored.
        """
        stmt = select(exists().where(AccountToken.value == value))
        result = await db.execute(stmt)
        return bool(result.scalar())

    @staticmethod
    async def list_for_account(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        kind: TokenKind | None = None,
        unused_only: bool = False,
    ) -> list[AccountToken]:
        """List an account's tokens, oldest first.

        Args:
            db: Async database session.
            account_id: Owning account.
            kind: Restrict to this kind when given.
            unused_only: Skip consumed tokens.

        Returns:
            Matching tokens.
        """
        stmt = select(AccountToken).where(AccountToken.account_id == account_id)
        if kind is not None:
            stmt = stmt.where(AccountToken.kind == kind)
        if unused_only:
            stmt = stmt.where(AccountToken.used.is_(False))
        stmt = stmt.order_by(AccountToken.created_at)
        result = await db.execute(stmt)
        return list(result.unique().scalars().all())

    @staticmethod
    async def delete_unused(
        db: AsyncSession,
        *,
        account_id: uuid.UUID,
        kind: TokenKind,
    ) -> int:
        """Delete the account's unused tokens of a kind (supersession).

        Executed as a DELETE statement so it runs before the replacement
        INSERT is flushed.

        Args:
            db: Async database session.
            account_id: Owning account.
            kind: Token kind being reissued.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(AccountToken).where(
            AccountToken.account_id == account_id,
            AccountToken.kind == kind,
            AccountToken.used.is_(False),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def mark_used(db: AsyncSession, token: AccountToken) -> AccountToken:
        """Mark a token as consumed.

        Args:
            db: Async database session.
            token: Token being consumed.

        Returns:
            Updated token.
        """
        token.used = True
        await db.flush()
        return token

    @staticmethod
    async def count_unused(
        db: AsyncSession,
        *,
        account_id: uuid.UUID,
        kind: TokenKind,
    ) -> int:
        """Count the account's unused tokens of a kind.

        Args:
            db: Async database session.
            account_id: Owning account.
            kind: Token kind.

        Returns:
            Number of unused tokens (0 or 1 when invariants hold).
        """
        stmt = select(func.count()).where(
            AccountToken.account_id == account_id,
            AccountToken.kind == kind,
            AccountToken.used.is_(False),
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def delete_expired(db: AsyncSession, now: datetime | None = None) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(AccountToken).where(
            AccountToken.expires_at <= (now or datetime.now(UTC)),
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
