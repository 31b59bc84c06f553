"""
Configuration management for the billing service.

All configuration comes from environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GITROOM_",
        case_sensitive=False
    )

    # Security (required)
    jwt_secret: str = Field(..., min_length=32)

    # Stripe
    stripe_secret_key: str = ""
    stripe_signing_key: str = ""          # webhook secret for billing events
    stripe_signing_key_connect: str = ""  # webhook secret for connected-account events
    stripe_api_version: str = "2024-04-10"
    stripe_max_network_retries: int = 2

    # Billing
    is_billing_enabled: bool = True
    service_name: str = "gitroom"
    fee_amount: float = Field(0.05, ge=0, le=1)  # marketplace fee, fraction of order total

    # Frontend (redirect targets for checkout, portal, onboarding)
    frontend_url: str = "http://localhost:4200"

    # Storage
    database_url: str = "sqlite:///./data/gitroom_billing.db"

    # CORS
    cors_origins: list[str] = ["http://localhost:4200", "http://127.0.0.1:4200"]

    # Observability
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = ""
    sentry_dsn: str = ""
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.1

    # Validators
    @field_validator('jwt_secret')
    @classmethod
    def reject_default_values(cls, v: str) -> str:
        """Reject default/weak JWT secrets."""
        forbidden = ['your-secret-key-change-in-production', 'secret', 'test', 'password', 'change-me', 'default-secret']
        if v.lower() in forbidden:
            raise ValueError("JWT_SECRET cannot be a default value. Generate with: openssl rand -base64 32")
        return v

    @field_validator('frontend_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def fee_percent(self) -> float:
        """Marketplace fee as a percentage, for display."""
        return round(self.fee_amount * 100, 2)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
