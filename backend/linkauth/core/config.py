"""Application configuration loaded from environment variables.

Settings for the database deployment mode, backend credentials, and token
lifetimes. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from linkauth.backends.d1_adapter import DEFAULT_D1_API_BASE_URL

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# Longest lifetimes accepted for magic links (7 days) and sessions and typed tokens (1 year)
MAX_MAGIC_LINK_TTL_MINUTES = 7 * 24 * 60
MAX_TOKEN_TTL_DAYS = 365

DatabaseMode = Literal["managed", "dev", "test"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Database deployment mode: managed D1, local SQLite file, or in-memory.
    # Read once when the gateway is created.
    database_mode: DatabaseMode = "dev"

    # Managed backend (Cloudflare D1 REST API)
    d1_account_id: str = ""
    d1_database_id: str = ""
    d1_api_token: SecretStr = SecretStr("")
    d1_api_base_url: str = DEFAULT_D1_API_BASE_URL
    d1_timeout_seconds: float = 30.0

    # Dev backend
    sqlite_path: str = "linkauth.db"
    sqlite_echo: bool = False

    # Authentication
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "linkauth"
    auth_audience: str = "linkauth"
    session_ttl_days: int = 7
    magic_link_ttl_minutes: int = 30
    token_ttl_days: int = 7

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate cross-field and production requirements.

        Checks:
        - Token lifetimes must be positive (all environments)
        - Magic-link, session, and token lifetimes stay within their maximums
        - Managed mode needs D1 account id, database id, and API token
        - AUTH_SECRET must be set and >= 32 chars in production
        - The in-memory test database is never allowed in production
        """
        for name in ("magic_link_ttl_minutes", "session_ttl_days", "token_ttl_days"):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)
        for name, upper in (
            ("magic_link_ttl_minutes", MAX_MAGIC_LINK_TTL_MINUTES),
            ("session_ttl_days", MAX_TOKEN_TTL_DAYS),
            ("token_ttl_days", MAX_TOKEN_TTL_DAYS),
        ):
            value = getattr(self, name)
            if value > upper:
                msg = f"{name.upper()} must be at most {upper}. Got: {value}"
                raise ValueError(msg)

        if self.database_mode == "managed":
            missing = [
                env_name
                for env_name, value in (
                    ("D1_ACCOUNT_ID", self.d1_account_id),
                    ("D1_DATABASE_ID", self.d1_database_id),
                    ("D1_API_TOKEN", self.d1_api_token.get_secret_value()),
                )
                if not value
            ]
            if missing:
                msg = (
                    "DATABASE_MODE=managed requires "
                    f"{', '.join(missing)} to be set."
                )
                raise ValueError(msg)

        if self.environment == "production":
            if self.database_mode == "test":
                msg = "DATABASE_MODE=test (in-memory) cannot be used in production."
                raise ValueError(msg)

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
