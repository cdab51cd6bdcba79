"""Application configuration loaded from environment variables.

Settings for database, API, sessions, Google sign-in, and outbound email.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "videocall_dev_password"  # nosec B105

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
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "videocall"
    database_user: str = "videocall_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    auto_create_tables: bool = True

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:5000"]

    # Application
    # "development" is the non-production mode: verification codes may be
    # echoed in responses and the mock sender may replace real delivery.
    environment: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    app_name: str = "Video Call App"

    # Sessions
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "videocall-identity"
    auth_cookie_name: str = "videocall.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    session_ttl_hours: int = 24

    # Google sign-in
    google_client_id: str = ""
    google_client_secret: SecretStr = SecretStr("")

    # Outbound email (fixed sender credentials, never per-recipient)
    email_user: str = ""
    email_app_password: SecretStr = SecretStr("")
    email_password: SecretStr = SecretStr("")
    email_service: str = "gmail"
    email_from_name: str = "Video Call App"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_timeout_seconds: float = 30.0
    email_retry_delay_seconds: float = 1.0
    email_self_test_on_startup: bool = True

    # Frontend URL (redirect target after Google sign-in)
    frontend_url: str = "http://localhost:5000"

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_send_code: str = "5/15minute"
    rate_limit_verify_code: str = "10/15minute"
    rate_limit_password: str = "10/15minute"
    rate_limit_oauth: str = "20/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_development(self) -> bool:
        """Operational non-production flag."""
        return self.environment == "development"

    @property
    def sender_password(self) -> str:
        """SMTP password for the fixed sender account.

        An app password takes precedence over the plain account password.

        Returns:
            Plain password string (empty when none is configured).
        """
        app_password = self.email_app_password.get_secret_value()
        return app_password or self.email_password.get_secret_value()

    @property
    def use_mock_email(self) -> bool:
        """Whether the mock sender replaces real delivery.

        Only in development and only when no sender account is configured.
        """
        return self.is_development and not self.email_user

    def _production_problems(self) -> list[str]:
        problems = []
        if self.database_password == _INSECURE_DEFAULT_PASSWORD:
            problems.append(
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD to a secure value."
            )

        secret_value = self.auth_secret.get_secret_value()
        if not secret_value:
            problems.append(
                "AUTH_SECRET must be set in production. "
                'Generate with: python -c "import secrets; '
                'print(secrets.token_hex(32))"'
            )
        elif len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
            problems.append(
                f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                "characters for adequate security."
            )

        # Production never falls back to the mock sender
        if not self.email_user or not self.sender_password:
            problems.append(
                "EMAIL_USER and EMAIL_APP_PASSWORD (or EMAIL_PASSWORD) must be "
                "set in production; verification codes cannot be delivered."
            )
        return problems

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Reject settings that would make the service unsafe or unusable.

        Always: SameSite=None needs Secure, no wildcard CORS origin (the
        session is a credentialed cookie), and a non-negative retry delay.
        In production additionally: no default database password, a strong
        AUTH_SECRET, and real sender credentials. All production problems
        are reported together.
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*'. Session cookies are "
                "credentials and cannot be shared with wildcard origins."
            )
            raise ValueError(msg)

        if self.email_retry_delay_seconds < 0:
            msg = (
                "EMAIL_RETRY_DELAY_SECONDS cannot be negative. "
                f"Got: {self.email_retry_delay_seconds}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            problems = self._production_problems()
            if problems:
                raise ValueError(" ".join(problems))

        return self


settings = Settings()
