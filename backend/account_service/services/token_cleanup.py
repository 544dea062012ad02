"""Expired account token cleanup.

Expired tokens can never be used again, so they are purged on a schedule
instead of accumulating. Runs outside of a request; the caller owns the
session and commits.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from account_service.core.errors import APIError
from account_service.repositories.account_token_repository import (
    AccountTokenRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenCleanupResult:
    """Result of an expired token purge.

    Attributes:
        deleted_tokens: Number of expired tokens deleted.
        cutoff: Tokens expiring at or before this time were deleted.
    """

    deleted_tokens: int
    cutoff: datetime


class CleanupError(APIError):
    """Raised when a cleanup operation fails at the database level."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="CLEANUP_ERROR",
            message=message,
            status_code=500,
        )


async def purge_expired_tokens(
    db: AsyncSession, now: datetime | None = None
) -> TokenCleanupResult:
    """Delete every expired account token, used or not.

    Args:
        db: Database session.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        TokenCleanupResult with the deletion count.

    Raises:
        CleanupError: If the database operation fails.
    """
    cutoff = now or datetime.now(UTC)
    try:
        deleted = await AccountTokenRepository.delete_expired(db, cutoff)
    except SQLAlchemyError as exc:
        logger.error("Expired token cleanup failed: %s", exc)
        raise CleanupError("Expired token cleanup failed") from exc

    logger.info("Purged %d expired account tokens", deleted)
    return TokenCleanupResult(deleted_tokens=deleted, cutoff=cutoff)
