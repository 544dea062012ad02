import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import bcrypt
import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from account_service.core.config import settings
from account_service.core.email import ResendMailer
from account_service.core.security import BcryptPasswordHasher
from account_service.models import Account, Base

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "secret1"  # nosec B105  # gitleaks:allow
BCRYPT_ROUNDS = 4  # Low cost factor for fast tests


def create_test_jwt(
    account_id: uuid.UUID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session JWT for an account.

    Args:
        account_id: Account UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(account_id),
        "aud": "account-service",
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def test_settings() -> Iterator[None]:
    """Test secret, plain-HTTP cookies, and cheap bcrypt for every test."""
    original = (
        settings.auth_secret,
        settings.auth_cookie_secure,
        settings.bcrypt_rounds,
        settings.token_ttl_hours,
        settings.token_max_attempts,
    )
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.auth_cookie_secure = False
    settings.bcrypt_rounds = BCRYPT_ROUNDS
    settings.token_ttl_hours = 24
    settings.token_max_attempts = 10

    yield

    (
        settings.auth_secret,
        settings.auth_cookie_secure,
        settings.bcrypt_rounds,
        settings.token_ttl_hours,
        settings.token_max_attempts,
    ) = original


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a throwaway SQLite database with the full schema.

    One file per test, one connection per session, so request sessions
    and the test's own session see each other's commits.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    """bcrypt hasher with the test cost factor."""
    return BcryptPasswordHasher(rounds=BCRYPT_ROUNDS)


@pytest.fixture
def mailer() -> AsyncMock:
    """Mailer double recording sent emails."""
    return AsyncMock(spec=ResendMailer)


async def _create_account(
    db: AsyncSession, *, email: str, name: str, verified: bool
) -> Account:
    password_hash = bcrypt.hashpw(
        TEST_PASSWORD.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode()
    account = Account(
        name=name,
        email=email,
        password_hash=password_hash,
        verified=verified,
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


@pytest_asyncio.fixture
async def unverified_account(db_session: AsyncSession) -> Account:
    """Registered account that has not confirmed its email."""
    return await _create_account(
        db_session, email="ana@x.com", name="Ana", verified=False
    )


@pytest_asyncio.fixture
async def verified_account(db_session: AsyncSession) -> Account:
    """Registered account with a confirmed email."""
    return await _create_account(
        db_session, email="bruno@x.com", name="Bruno", verified=True
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    mailer: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Anonymous HTTP client against the app.

    Sets up:
    - Test database connection via dependency override
    - Mailer double via dependency override
    - httpx.AsyncClient with ASGI transport (keeps cookies between calls)

    Yields:
        Configured AsyncClient.
    """
    from account_service.api.deps import get_mailer
    from account_service.core.database import get_db
    from account_service.main import app

    # Override get_db to use test database
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
