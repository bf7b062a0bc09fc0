from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    app_name: str = Field(default="Subscription Billing API", alias="APP_NAME")
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="production",
        alias="APP_ENV",
    )
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )

    solana_rpc_url: str = Field(default="https://api.devnet.solana.com", alias="SOLANA_RPC_URL")
    subscription_program_id: Optional[str] = Field(default=None, alias="SUBSCRIPTION_PROGRAM_ID")
    # Base64 of a JSON array of 64 ints; never logged.
    merchant_keypair_secret: Optional[SecretStr] = Field(default=None, alias="MERCHANT_KEYPAIR_SECRET")
    merchant_wallet: Optional[str] = Field(default=None, alias="MERCHANT_WALLET")
    # Circle's USDC on devnet.
    usdc_mint: str = Field(default="4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU", alias="USDC_MINT")
    # Peers whose X-Forwarded-For is honoured when resolving the caller address.
    forwarded_allow_ips: str = Field(default="127.0.0.1", alias="FORWARDED_ALLOW_IPS")

    rpc_timeout_seconds: float = Field(default=30.0, gt=0, le=300, alias="RPC_TIMEOUT_SECONDS")
    confirm_timeout_seconds: float = Field(default=60.0, gt=0, le=600, alias="CONFIRM_TIMEOUT_SECONDS")
    confirm_poll_seconds: float = Field(default=1.0, gt=0, le=30, alias="CONFIRM_POLL_SECONDS")
    charge_concurrency: int = Field(default=1, ge=1, le=32, alias="CHARGE_CONCURRENCY")
    skip_expired: bool = Field(default=True, alias="SKIP_EXPIRED")

    # Ceilings stay inside the u64 amount and i64 interval fields of the record.
    max_plausible_amount: int = Field(default=1_000_000_000_000, gt=0, le=2**64 - 1, alias="MAX_PLAUSIBLE_AMOUNT")
    max_interval_seconds: int = Field(default=365 * 24 * 60 * 60, gt=0, le=2**63 - 1, alias="MAX_INTERVAL_SECONDS")

    rate_limit_window_seconds: int = Field(default=60, ge=1, le=3600, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_requests: int = Field(default=3, ge=1, le=1000, alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_sweep_seconds: int = Field(default=60, ge=1, alias="RATE_LIMIT_SWEEP_SECONDS")

    @field_validator("api_v1_prefix")
    @classmethod
    def validate_api_prefix(cls, value: str) -> str:
        """Ensure the API prefix starts with a slash and has no trailing slash."""
        normalized = value.strip()
        if not normalized.startswith("/"):
            raise ValueError("API_V1_PREFIX must start with '/'.")
        if len(normalized) > 1 and normalized.endswith("/"):
            normalized = normalized.rstrip("/")
        return normalized

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: str | list[str]) -> list[str]:
        """Support comma-separated CORS origins from environment variables."""
        if isinstance(value, str):
            if not value.strip():
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("solana_rpc_url")
    @classmethod
    def validate_rpc_url(cls, value: str) -> str:
        """RPC endpoint must be an http(s) URL."""
        lowered = value.strip().lower()
        if not (lowered.startswith("http://") or lowered.startswith("https://")):
            raise ValueError("SOLANA_RPC_URL must start with http:// or https://")
        return value.strip()

    @field_validator("subscription_program_id", "merchant_wallet", mode="before")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings: Settings = get_settings()

# Storefront plans; prices in whole USDC, interval in seconds.
PLANS = {
    "basic": {
        "id": "basic",
        "name": "Basic",
        "price": "0.1",
        "interval": 30 * 24 * 60 * 60,
        "popular": False,
        "features": ["Access to basic features", "Email support", "Monthly updates", "Cancel anytime"],
    },
    "pro": {
        "id": "pro",
        "name": "Pro",
        "price": "0.2",
        "interval": 30 * 24 * 60 * 60,
        "popular": True,
        "features": [
            "All Basic features",
            "Priority support",
            "Advanced analytics",
            "API access",
            "Cancel anytime",
        ],
    },
    "enterprise": {
        "id": "enterprise",
        "name": "Enterprise",
        "price": "0.3",
        "interval": 30 * 24 * 60 * 60,
        "popular": False,
        "features": [
            "All Pro features",
            "Dedicated support",
            "Custom integrations",
            "SLA guarantee",
            "Cancel anytime",
        ],
    },
}
