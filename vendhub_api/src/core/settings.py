from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the VendHub API service.

    Database configuration lives separately in src.db.config.Settings. Everything
    else (tokens, CORS, payment providers, fiscal integration) is read here.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="VendHub OS API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for VendHub OS, a multi-tenant vending machine management "
            "platform: machines, inventory, orders, payments, fiscalization, "
            "contracts and maintenance."
        )
    )
    APP_VERSION: str = Field(default="1.0.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, seed base tenant, roles and demo catalog after migrations.",
    )

    DEFAULT_TENANT_SLUG: str = Field(default="vendhub")

    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name")

    # Tokens
    JWT_SECRET_KEY: str = Field(default="change-me-in-production")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # Payme
    PAYME_MERCHANT_ID: Optional[str] = Field(default=None)
    PAYME_MERCHANT_KEY: Optional[str] = Field(default=None)
    PAYME_CHECKOUT_URL: str = Field(default="https://checkout.paycom.uz")

    # Click
    CLICK_MERCHANT_ID: Optional[str] = Field(default=None)
    CLICK_SERVICE_ID: Optional[str] = Field(default=None)
    CLICK_SECRET_KEY: Optional[str] = Field(default=None)
    CLICK_CHECKOUT_URL: str = Field(default="https://my.click.uz/services/pay")
    CLICK_RETURN_URL: Optional[str] = Field(default=None)

    # Uzum
    UZUM_MERCHANT_ID: Optional[str] = Field(default=None)
    UZUM_SECRET_KEY: Optional[str] = Field(default=None)
    UZUM_API_URL: str = Field(default="https://api.uzumbank.uz")
    UZUM_RETURN_URL: Optional[str] = Field(default=None)

    # MultiKassa fiscal integration
    MULTIKASSA_DEFAULT_BASE_URL: str = Field(default="http://localhost:8080/api/v1")
    MULTIKASSA_TIMEOUT_SECONDS: float = Field(default=30.0)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]

    @property
    def log_level(self) -> int:
        """Numeric logging level for LOG_LEVEL, INFO when unknown."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """Return a new AppSettings instance populated from environment variables."""
    return AppSettings()
