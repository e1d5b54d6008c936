"""
Configuration management for the Marketplace API.

Loads settings from .env via pydantic-settings.

Notes:
    - payment_test_mode is derived, never set directly: development
      environments and Paystack test keys never move real money
    - validate_production_settings() refuses to boot a misconfigured prod
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/marketplace.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    frontend_url: str = "http://localhost:5173"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "marketplace-api"
    jwt_access_ttl_minutes: int = 60
    auth_cookie_name: str = "authToken"

    # ── Paystack ────────────────────────────────────────────────────
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    paystack_timeout_seconds: float = 10.0
    paystack_transfer_timeout_seconds: float = 30.0
    paystack_currency: str = "NGN"
    paystack_country: str = "nigeria"

    # ── Seller payouts ──────────────────────────────────────────────
    bank_verification_cache_seconds: int = 300  # 5 minutes

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

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
    def payment_test_mode(self) -> bool:
        """
        True when payouts and recipients must be simulated.

        Paystack test keys cannot perform transfers, so any key containing
        'test' (or a development environment) switches to simulated payouts.
        """
        return self.environment == "development" or "test" in self.paystack_secret_key

    @property
    def payment_mode_label(self) -> str:
        return "test" if self.payment_test_mode else "live"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign buyer and seller access tokens."
                )
            if not self.paystack_secret_key:
                raise ValueError(
                    "PAYSTACK_SECRET_KEY must be set in production. "
                    "It is used for charges, transfers and webhook signatures."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.payment_test_mode:
                warnings.append("Payment test mode active (seller transfers are simulated)")
            if not self.paystack_secret_key:
                warnings.append("PAYSTACK_SECRET_KEY unset (webhooks will be rejected)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(w)


# Global settings instance
settings = Settings()
