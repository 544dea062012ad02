"""Repository for Account CRUD operations.

Provides database access for the ``account`` table. Callers own the
transaction: methods flush, never commit.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.models.account import ROLE_USER, Account

# Fields that may be updated via AccountRepository.update().
# Security: Never add 'id' or 'email'.
# - id: primary key, immutable
# - email: unique identity, requires dedicated flow with re-verification
# Security: 'roles' and 'verified' are excluded to prevent mass assignment.
# Use mark_verified() for the confirmation transition.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "password_hash",
    }
)


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        """Fetch an account by primary key.

        Args:
            db: Async database session.
            account_id: UUID primary key.

        Returns:
            Account if found, None otherwise.
        """
        return await db.get(Account, account_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def lock(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
        """Fetch an account with a row lock held until the transaction ends.

        Serializes concurrent token issuance for the same account.
        ``FOR UPDATE`` is a no-op on SQLite.

        Args:
            db: Async database session.
            account_id: UUID primary key.

        Returns:
            Account if found, None otherwise.
        """
        stmt = select(Account).where(Account.id == account_id).with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        name: str,
        email: str,
        password_hash: str,
        roles: list[str] | None = None,
    ) -> Account:
        """Create a new, unverified account.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            name: Display name.
            email: Login email address.
            password_hash: Hash produced by the password hasher.
            roles: Role names. Defaults to ``["ROLE_USER"]``.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        account = Account(
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            roles=list(roles) if roles is not None else [ROLE_USER],
            verified=False,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def update(
        db: AsyncSession,
        account: Account,
        **kwargs: str,
    ) -> Account:
        """Update account fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            account: Account to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated Account.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        return account

    @staticmethod
    async def mark_verified(db: AsyncSession, account: Account) -> Account:
        """Flip ``verified`` to True.

        Separated from update() so the verification transition only
        happens from the confirmation flow.

        Args:
            db: Async database session.
            account: Account being confirmed.

        Returns:
            Updated Account.
        """
        account.verified = True
        await db.flush()
        return account

    @staticmethod
    async def delete(db: AsyncSession, account: Account) -> None:
        """Delete an account. Its tokens are removed by the FK cascade.

        Args:
            db: Async database session.
            account: Account to delete.
        """
        await db.delete(account)
        await db.flush()
