"""Application configuration loaded from environment variables.

Settings for database, session cookies, CSRF, account tokens, and email
delivery. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = (
        "postgresql+asyncpg://accounts_user:accounts_dev_password"
        "@localhost:5432/accounts"
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Public base URL used to build absolute links in emails
    public_url: str = "http://localhost:8000"
    home_path: str = "/"
    login_path: str = "/login"

    # CORS (browser clients rendering the forms)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Session (JWT cookie)
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "account-service"
    auth_cookie_name: str = "account.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    session_ttl_minutes: int = 60
    remember_me_ttl_days: int = 30

    # CSRF (double-submit nonce cookie + signed per-form token)
    csrf_cookie_name: str = "account.csrf-nonce"
    csrf_token_ttl_minutes: int = 60

    # Account tokens
    token_ttl_hours: int = 24
    token_max_attempts: int = 10

    # Registration rules
    password_min_length: int = 6
    name_min_length: int = 2

    # Password hashing
    bcrypt_rounds: int = 12

    # Email (Resend)
    email_from: str = "no-reply@example.com"
    resend_api_key: SecretStr = SecretStr("")
    mail_timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - Token retry cap and TTL must be positive
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if self.token_max_attempts < 1:
            msg = f"TOKEN_MAX_ATTEMPTS must be at least 1. Got: {self.token_max_attempts}"
            raise ValueError(msg)
        if self.token_ttl_hours <= 0:
            msg = f"TOKEN_TTL_HOURS must be positive. Got: {self.token_ttl_hours}"
            raise ValueError(msg)

        if self.environment == "production":
            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
