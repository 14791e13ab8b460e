"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production may inject everything through the process environment
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_JWT_SECRET = "change-me-in-production"


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    BaseSettings reads its fields from the environment; static type checkers
    still see required constructor arguments, hence the ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_auth_settings() -> "AuthSettings":
    return AuthSettings()  # type: ignore[call-arg]


def _build_db_settings() -> "DatabaseSettings":
    return DatabaseSettings()  # type: ignore[call-arg]


def _build_stripe_settings() -> "StripeSettings":
    return StripeSettings()  # type: ignore[call-arg]


def _build_llm_settings() -> "LLMSettings":
    return LLMSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    app_url: str = Field(
        "http://localhost:3000",
        description="Public URL of the web client, used for checkout and portal redirects",
    )
    max_upload_size_mb: int = Field(
        20,
        description="Maximum document upload size in megabytes",
    )
    max_pdf_pages: int = Field(
        500,
        description="Maximum number of PDF pages processed during text extraction",
    )
    max_docx_paragraphs: int = Field(
        20000,
        description="Maximum number of DOCX paragraphs processed during text extraction",
    )
    file_extraction_timeout_seconds: float = Field(
        15.0,
        description="Upper bound for text extraction of a single upload",
    )
    preview_chars: int = Field(
        500,
        description="Number of extracted-text characters returned after upload",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_login_requests: int = Field(10, ge=1)
    rate_limit_login_window_seconds: int = Field(300, ge=1)
    rate_limit_register_requests: int = Field(5, ge=1)
    rate_limit_register_window_seconds: int = Field(3600, ge=1)
    rate_limit_api_general_requests: int = Field(100, ge=1)
    rate_limit_api_general_window_seconds: int = Field(60, ge=1)
    rate_limit_upload_requests: int = Field(10, ge=1)
    rate_limit_upload_window_seconds: int = Field(60, ge=1)
    rate_limit_compare_requests: int = Field(20, ge=1)
    rate_limit_compare_window_seconds: int = Field(60, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    def rate_limit_policy(self, name: str) -> tuple[int, int]:
        """Return ``(requests, window_seconds)`` for a named policy.

        Raises:
            KeyError: If the policy is unknown.
        """
        try:
            return (
                getattr(self, f"rate_limit_{name}_requests"),
                getattr(self, f"rate_limit_{name}_window_seconds"),
            )
        except AttributeError as exc:
            raise KeyError(name) from exc


class AuthSettings(BaseSettings):
    """Session token and password configuration."""

    jwt_secret: str = Field(
        DEFAULT_JWT_SECRET,
        description="Secret used to sign session tokens (32+ characters recommended)",
    )
    jwt_algorithm: str = Field("HS256")
    token_expire_days: int = Field(30, ge=1)
    cookie_name: str = Field("auth-token")
    cookie_secure: bool = Field(
        False,
        description="Mark the session cookie Secure (enable behind HTTPS)",
    )
    min_password_length: int = Field(8, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Relational database configuration."""

    url: str = Field(
        "sqlite:///./companion.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(False, description="Log emitted SQL statements")

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
    )


class StripeSettings(BaseSettings):
    """Payment provider configuration."""

    secret_key: str | None = Field(None, description="Stripe secret key (sk_...)")
    price_id_standard: str | None = Field(
        None,
        description="Price id of the STANDARD monthly plan",
    )
    currency: str = Field("eur")
    standard_amount: int = Field(23, description="Displayed STANDARD plan price")

    model_config = SettingsConfigDict(
        env_prefix="STRIPE_",
        case_sensitive=False,
    )


class LLMSettings(BaseSettings):
    """LLM provider configuration for the legal assistant.

    Provider and model are optional: without them the assistant endpoint
    reports itself unavailable while the rest of the API keeps working.
    """

    provider: str | None = Field(
        None,
        description="LLM provider name (e.g., openai)",
    )
    model: str | None = Field(
        None,
        description="Model name (e.g., gpt-4o)",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None)
    max_bytes: int = Field(10 * 1024 * 1024)
    backup_count: int = Field(5)
    request_id_header: str = Field("X-Request-ID")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production
    - production: Production deployment
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    auth: AuthSettings = Field(default_factory=_build_auth_settings)
    db: DatabaseSettings = Field(default_factory=_build_db_settings)
    stripe: StripeSettings = Field(default_factory=_build_stripe_settings)
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


settings = Settings()
