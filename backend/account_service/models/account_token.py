"""AccountToken model - single-use, time-limited email credentials.

Issued on registration, confirmation resend, and forgot-password.
Consumed by the confirm and reset endpoints. At most one unused token
per (account, kind); the partial unique index enforces it at the storage
layer for concurrent requests.
"""

import enum
import secrets
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    String,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from account_service.models.base import Base

if TYPE_CHECKING:
    from account_service.models.account import Account

# 32 random bytes, hex-encoded (256 bits of entropy)
TOKEN_BYTES = 32
TOKEN_VALUE_LENGTH = TOKEN_BYTES * 2

DEFAULT_TOKEN_TTL = timedelta(hours=24)


class TokenKind(enum.StrEnum):
    """What an account token proves."""

    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"


def generate_token_value() -> str:
    """Generate an unpredictable token value.

    Returns:
        64-character hex string.
    """
    return secrets.token_hex(TOKEN_BYTES)


class AccountToken(Base):
    """Email credential for registration confirmation or password reset.

    Attributes:
        id: UUID primary key.
        account_id: FK to the owning account (cascade delete).
        value: Unique random value sent by email.
        kind: Registration or password reset.
        created_at: Issue time.
        expires_at: ``created_at`` + TTL, fixed at construction.
        used: True once consumed. Never reset.
    """

    __tablename__ = "account_token"
    __table_args__ = (
        Index("idx_account_token_expires_at", "expires_at"),
        Index(
            "uq_account_token_live_kind",
            "account_id",
            "kind",
            unique=True,
            postgresql_where=text("used = false"),
            sqlite_where=text("used = 0"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value: Mapped[str] = mapped_column(
        String(TOKEN_VALUE_LENGTH),
        unique=True,
        nullable=False,
    )
    kind: Mapped[TokenKind] = mapped_column(
        Enum(
            TokenKind,
            name="token_kind",
            native_enum=False,
            length=20,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=false(),
        default=False,
    )

    # Always needed alongside the token (confirm / reset act on the account)
    account: Mapped["Account"] = relationship(
        "Account",
        lazy="joined",
    )

    @classmethod
    def build(
        cls,
        *,
        account: "Account",
        kind: TokenKind,
        value: str,
        now: datetime | None = None,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
    ) -> "AccountToken":
        """Construct an unused token with its expiry fixed from ``now``.

        Args:
            account: Owning account.
            kind: Token kind.
            value: Pre-generated unique value.
            now: Creation time. Defaults to the current UTC time.
            ttl: Lifetime. Defaults to 24 hours.

        Returns:
            Transient AccountToken (not yet added to a session).
        """
        created = now or datetime.now(UTC)
        return cls(
            account_id=account.id,
            account=account,
            kind=kind,
            value=value,
            created_at=created,
            expires_at=created + ttl,
            used=False,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the token is past its expiry."""
        return (now or datetime.now(UTC)) >= self.expires_at

    def is_usable(self, now: datetime | None = None) -> bool:
        """Whether the token may still be consumed."""
        return not self.used and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<AccountToken {self.kind.value} account={self.account_id}>"
