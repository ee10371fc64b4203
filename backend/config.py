"""
Configuration management for the merchant IPN confirmation service.

Loads settings from .env via pydantic-settings.

Security notes:
    - merchant_secret is the HMAC key shared with the gateway; callbacks
      are rejected (fail closed) when it is empty
    - validate_production_settings() refuses to start in production
      without gateway credentials

Ledger default: allow_transient_regression is off, so a transient status
that moves backwards (e.g. WaitingToConfirm then Pending) is ignored as a
duplicate. Set ALLOW_TRANSIENT_REGRESSION=true for last-write-wins among
transient statuses; terminal statuses are never overwritten either way.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Gateway ─────────────────────────────────────────────────────
    gateway_base_url: str = "https://api.gateway.example"
    gateway_api_key: str = ""
    gateway_payment_url: str = "https://pay.gateway.example/invoice"

    # ── Callback authentication ─────────────────────────────────────
    merchant_secret: str = ""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/merchant_ipn.db"
    sqlite_busy_timeout_seconds: float = 5.0

    # ── Verify call retry policy ────────────────────────────────────
    verify_max_attempts: int = 5
    verify_base_delay_seconds: float = 0.2
    verify_backoff_multiplier: float = 2.0
    verify_max_delay_seconds: float = 5.0
    verify_jitter: float = 0.1            # ± fraction applied to each delay
    verify_timeout_seconds: float = 10.0  # per HTTP attempt
    verify_deadline_seconds: float = 30.0  # whole verify including retries
    verify_max_concurrency: int = 8

    # ── Ledger ──────────────────────────────────────────────────────
    ledger_conflict_retries: int = 5
    # Last-write-wins for backwards moves among transient statuses
    allow_transient_regression: bool = False

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def merchant_secret_bytes(self) -> bytes:
        return self.merchant_secret.encode("utf-8")

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if not self.merchant_secret:
                raise ValueError(
                    "MERCHANT_SECRET must be set in production. "
                    "It is the HMAC key used to authenticate gateway callbacks."
                )
            if not self.gateway_api_key:
                raise ValueError(
                    "GATEWAY_API_KEY must be set in production. "
                    "It authenticates verify and request calls to the gateway."
                )
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.allow_transient_regression:
                logger.warning("ALLOW_TRANSIENT_REGRESSION=true (last-write-wins for transient statuses)")
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if not self.merchant_secret:
                warnings.append("MERCHANT_SECRET is empty (all callbacks will be rejected)")
            if not self.gateway_api_key:
                warnings.append("GATEWAY_API_KEY is empty (verify calls will be unauthenticated)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()
