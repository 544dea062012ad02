"""SQLAlchemy ORM models for the account service.

All models are exported from this module for convenient imports:
    from account_service.models import Account, AccountToken

- account.py: Account
- account_token.py: AccountToken, TokenKind
"""

from account_service.models.account import ROLE_USER, Account
from account_service.models.account_token import AccountToken, TokenKind
from account_service.models.base import Base, UTCDateTime

__all__ = [
    # Base classes
    "Base",
    "UTCDateTime",
    # Accounts
    "Account",
    "ROLE_USER",
    # Tokens
    "AccountToken",
    "TokenKind",
]
