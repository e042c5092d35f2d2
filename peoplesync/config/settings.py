"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings

from peoplesync.exceptions import ConfigError

DEFAULT_CREDENTIAL_TTL_SECONDS = 60 * 60 * 24 * 7
DEFAULT_WEBHOOK_TOLERANCE_SECONDS = 300

# Fields that must be set before the app may start
_REQUIRED_FIELDS = ("database_url", "jwt_secret_key", "clerk_webhook_secret")


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Database
    database_url: str | None = None

    # App
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Session credentials
    jwt_secret_key: str | None = None
    credential_ttl_seconds: int = DEFAULT_CREDENTIAL_TTL_SECONDS

    # Identity provider (Clerk)
    clerk_webhook_secret: str | None = None
    clerk_jwks_url: str | None = None
    clerk_issuer: str | None = None
    webhook_tolerance_seconds: int = DEFAULT_WEBHOOK_TOLERANCE_SECONDS

    # Provisioning
    employee_code_max_attempts: int = 5

    def validate_required(self) -> None:
        """Raise ConfigError if any startup-critical setting is missing."""
        missing = [
            name.upper()
            for name in _REQUIRED_FIELDS
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            msg = f"Missing required configuration: {', '.join(missing)}"
            raise ConfigError(msg)
        if self.credential_ttl_seconds <= 0:
            msg = "CREDENTIAL_TTL_SECONDS must be positive"
            raise ConfigError(msg)
        if self.webhook_tolerance_seconds <= 0:
            msg = "WEBHOOK_TOLERANCE_SECONDS must be positive"
            raise ConfigError(msg)
        if self.employee_code_max_attempts < 1:
            msg = "EMPLOYEE_CODE_MAX_ATTEMPTS must be at least 1"
            raise ConfigError(msg)


@lru_cache
def get_settings() -> Settings:
    """Return cached, validated settings instance."""
    settings = Settings()
    settings.validate_required()
    return settings
