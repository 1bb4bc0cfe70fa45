"""Application configuration loaded from environment variables.

Settings for the database, session store, identity providers, email
delivery and token lifetimes. Uses pydantic-settings for validation and
.env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
_INSECURE_DEFAULT_PASSWORD = "homeschool_dev_password"  # nosec B105

# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    # DATABASE_DSN overrides the individual fields (tests use sqlite+aiosqlite)
    database_dsn: str = ""
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "homeschool_hub"
    database_user: str = "homeschool_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS
    # Never set to ["*"] while credentials (the session cookie) are allowed
    allowed_origins: list[str] = ["http://localhost:5173"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Sessions
    # "memory" keeps sessions in-process (lost on restart, single instance only)
    # "redis" shares sessions between instances and survives restarts
    session_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    session_ttl_hours: int = 168
    session_cookie_name: str = "homeschool.sid"
    session_cookie_secure: bool = True
    session_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    session_cookie_domain: str = ""

    # Identity providers
    google_client_id: str = ""

    # Email
    email_from: str = "Homeschool Hub <noreply@homeschoolhub.app>"
    resend_api_key: SecretStr = SecretStr("")

    # Frontend URL (links in verification, reset and invite emails)
    frontend_url: str = "http://localhost:5173"

    # Passwords
    password_min_length: int = 8
    bcrypt_rounds: int = 12

    # Token lifetimes
    verification_token_ttl_hours: int = 24
    password_reset_token_ttl_minutes: int = 60
    invite_ttl_days: int = 7
    resend_verification_cooldown_seconds: int = 60

    # Background cleanup of expired identity state
    cleanup_enabled: bool = True
    cleanup_interval_hours: float = 6.0

    # Rate limiting
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_auth: str = "10/minute"  # login, signup, oauth, federated
    rate_limit_email: str = "5/minute"  # resend, forgot-password, invites
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_dsn:
            return self.database_dsn
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - SameSite=None requires the Secure flag (all environments)
        - Password minimum length and token lifetimes are positive
        - Database password must not be the default in production
        - CORS must not use a wildcard origin in production
        - Production sessions must live in Redis
        - Production email delivery needs an API key
        """
        if self.session_cookie_samesite == "none" and not self.session_cookie_secure:
            msg = (
                "SESSION_COOKIE_SECURE must be true when SESSION_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if not 1 <= self.password_min_length <= BCRYPT_MAX_PASSWORD_BYTES:
            msg = (
                f"PASSWORD_MIN_LENGTH must be between 1 and {BCRYPT_MAX_PASSWORD_BYTES}. "
                f"Got: {self.password_min_length}"
            )
            raise ValueError(msg)

        for name in (
            "session_ttl_hours",
            "verification_token_ttl_hours",
            "password_reset_token_ttl_minutes",
            "invite_ttl_days",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name.upper()} must be positive. Got: {getattr(self, name)}"
                raise ValueError(msg)

        if self.environment != "production":
            return self

        if self.database_password == _INSECURE_DEFAULT_PASSWORD:
            msg = (
                "DATABASE_PASSWORD must be changed from the default in production. "
                "Set a secure password via environment variable."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS cannot contain '*' in production. "
                "Wildcard origins are incompatible with credentialed requests."
            )
            raise ValueError(msg)

        if self.session_backend != "redis":
            msg = (
                "SESSION_BACKEND must be 'redis' in production. "
                "In-memory sessions are lost on restart and not shared between instances."
            )
            raise ValueError(msg)

        if not self.resend_api_key.get_secret_value():
            msg = "RESEND_API_KEY must be set in production."
            raise ValueError(msg)

        return self


settings = Settings()
