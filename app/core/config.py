from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = 24

    # App Configuration
    API_V1_STR: str = "/api/v1"
    LEGACY_PAYMENT_STR: str = "/api/payment"
    PROJECT_NAME: str = "TradeJournal Payments"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Xendit (invoice provider)
    XENDIT_API_BASE: str = "https://api.xendit.co"
    XENDIT_SECRET_KEY: Optional[str] = None
    XENDIT_CALLBACK_TOKEN: Optional[str] = None
    XENDIT_MIN_AMOUNT: float = 10000

    # Midtrans (snap provider)
    MIDTRANS_SERVER_KEY: Optional[str] = None
    MIDTRANS_CLIENT_KEY: Optional[str] = None
    MIDTRANS_IS_PRODUCTION: bool = False
    MIDTRANS_MIN_AMOUNT: float = 1000

    # PayPal (USD checkout, no reconciliation)
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_BASE_URL: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_RETURN_URL: str = "https://example.com/success"
    PAYPAL_CANCEL_URL: str = "https://example.com/cancel"

    # Audit line target (Discord-compatible webhook). Disabled when empty.
    DISCORD_WEBHOOK_URL: Optional[str] = None

    # Outbound HTTP to providers and the audit webhook
    PROVIDER_TIMEOUT_SECONDS: float = 10

    # Money rules. IDR_PER_USD is a fixed rate, there is no live FX.
    IDR_PER_USD: float = 15000
    AMOUNT_TOLERANCE: float = 1000
    RESCUE_WINDOW_HOURS: int = 48

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:4000",
    ]

    @field_validator("MIDTRANS_IS_PRODUCTION", mode="before")
    @classmethod
    def parse_is_production(cls, value):
        """Only the literal "true" (any case) switches Midtrans to production."""
        if isinstance(value, bool):
            return value
        return str(value or "").strip().lower() == "true"

    @property
    def midtrans_snap_base(self) -> str:
        if self.MIDTRANS_IS_PRODUCTION:
            return "https://app.midtrans.com/snap/v1"
        return "https://app.sandbox.midtrans.com/snap/v1"

    @property
    def midtrans_api_base(self) -> str:
        if self.MIDTRANS_IS_PRODUCTION:
            return "https://api.midtrans.com/v2"
        return "https://api.sandbox.midtrans.com/v2"

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


settings = Settings()
