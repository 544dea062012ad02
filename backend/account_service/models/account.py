"""Account model - registered identity.

One row per registered email. Owns its tokens: deleting an account
cascades to ``account_token``.
"""

import uuid

from sqlalchemy import JSON, Boolean, String, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from account_service.models.base import Base

ROLE_USER = "ROLE_USER"


def _default_roles() -> list[str]:
    return [ROLE_USER]


class Account(Base):
    """User account with credentials and verification status.

    Attributes:
        id: UUID primary key.
        name: Display name (at least 2 characters).
        email: Unique login identifier, stored lowercase.
        password_hash: Opaque hash from the password hasher.
        roles: Role names. Defaults to ``["ROLE_USER"]``.
        verified: True once the email has been confirmed. Never reset.
    """

    __tablename__ = "account"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(180),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    roles: Mapped[list[str]] = mapped_column(
        JSON(),
        nullable=False,
        default=_default_roles,
    )
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=false(),
        default=False,
    )

    def __repr__(self) -> str:
        return f"<Account {self.email}>"
