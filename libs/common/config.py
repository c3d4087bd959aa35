from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SQL_ECHO: bool = False

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"

    # Checkout
    CURRENCY: str = "SGD"
    DELIVERY_FEE: Decimal = Decimal("1.50")
    PAYNOW_RETURN_URL: str = "http://localhost:3000/checkout/paynow/return"

    # PayPal
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"

    # Stripe
    STRIPE_SECRET_KEY: str = ""

    # NETS QR
    NETS_API_BASE: str = "https://sandbox.nets.openapipaas.com/api/v1/common/payments/nets-qr"
    NETS_API_KEY: str = ""
    NETS_PROJECT_ID: str = ""
    NETS_TXN_ID: str = "sandbox_nets|m|8ff8e5b6-d43e-4786-8ac5-7accf8c5bd9b"

    # Status polling for QR / PayNow payments
    STATUS_POLL_INTERVAL_SECONDS: float = 5.0
    STATUS_POLL_MAX_ATTEMPTS: int = 60

    # Provider HTTP
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
