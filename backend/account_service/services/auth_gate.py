"""Authentication gate for account status.

Runs on every login attempt, around the password check. Unverified
accounts are refused before their password is looked at.
"""

import logging

from account_service.core.errors import AccountStatusError
from account_service.models.account import Account

logger = logging.getLogger(__name__)


class AuthGate:
    """Account status checks around credential verification."""

    def check_pre_authentication(self, account: Account) -> None:
        """Refuse accounts that have not confirmed their email.

        Args:
            account: Account loaded for the login attempt.

        Raises:
            AccountStatusError: If the account is not verified.
        """
        if not account.verified:
            logger.info("Login blocked for unverified account %s", account.id)
            raise AccountStatusError("unverified")

    def check_post_authentication(self, account: Account) -> None:  # noqa: ARG002
        """No status checks after a successful password check."""
