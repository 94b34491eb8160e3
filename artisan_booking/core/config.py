from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Artisan Booking API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str = "change-me"

    DATABASE_URL: str = "sqlite:///./artisan_booking.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Booking lifecycle
    PLATFORM_FEE_PERCENTAGE: float = 5
    CURRENCY: str = "NGN"
    BOOKING_ACCEPT_TIMEOUT_SECONDS: int = 120
    AUTO_RELEASE_HOURS: int = 48
    NEGOTIATION_MAX_ROUNDS: int = 3
    NEGOTIATION_TTL_HOURS: int = 24
    PAYMENT_REVERIFY_AFTER_MINUTES: int = 15

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_WEBHOOK_SECRET: str = ""
    PAYSTACK_CALLBACK_URL: str = ""  # e.g. https://app.example.com/payment/callback
    GATEWAY_TIMEOUT_SECONDS: int = 20

    # Notifications (outbox)
    NOTIFY_WEBHOOK_URL: str = ""  # If empty, notifications are only logged
    NOTIFY_TIMEOUT_SECONDS: int = 5
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_BATCH_SIZE: int = 50

    BOOKING_CACHE_TTL_SECONDS: int = 30


settings = Settings()
