from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # -----------------------------
    # Database
    # -----------------------------
    DATABASE_URL: str
    SQL_ECHO: bool = False

    # -----------------------------
    # Security / Authentication
    # -----------------------------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # -----------------------------
    # Pricing
    # -----------------------------
    CURRENCY: str = "MYR"
    TAX_RATE: Decimal = Decimal("0.06")
    LOW_STOCK_THRESHOLD: int = 5

    # -----------------------------
    # Returns
    # -----------------------------
    RETURN_WINDOW_DAYS: int = 30
    RETURN_MAX_ITEMS: int = 10
    RETURN_MIN_REASON_LENGTH: int = 10

    # -----------------------------
    # Payment gateways
    # -----------------------------
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_URL: str = "https://api.stripe.com/v1"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300

    CURLEC_KEY_ID: str = ""
    CURLEC_KEY_SECRET: str = ""
    CURLEC_WEBHOOK_SECRET: str = ""
    CURLEC_API_URL: str = "https://api.curlec.com/v1"

    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    APP_URL: str = "https://binwahab.com"

    # -----------------------------
    # App Environment
    # -----------------------------
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# -----------------------------
# Cached settings instance
# -----------------------------
@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
