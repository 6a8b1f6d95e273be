import logging
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Application Information
    app_name: str = Field(default="Course Marketplace")
    app_description: str = Field(default="Checkout pricing and payment settlement")
    app_version: str = Field(default="1.0.0")
    app_url: str = Field(default="http://localhost:8000")
    frontend_url: str = Field(default="http://localhost:3000")
    debug: bool = Field(default=True)
    production: bool = Field(default=False)

    # Database Configuration
    database_url: Optional[str] = Field(default=None)
    db_host: str = Field(default="127.0.0.1")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="marketplace")
    db_username: str = Field(default="home")
    db_password: str = Field(default="123")

    # Security Settings
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])
    jwt_secret: str = Field(default="your-secret-key-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="course-marketplace")
    jwt_access_expiration_minutes: int = Field(default=60 * 24)

    # Payment (Paystack)
    paystack_secret_key: str = Field(default="")
    paystack_base_url: str = Field(default="https://api.paystack.co")
    paystack_timeout_seconds: int = Field(default=15)
    payment_callback_url: str = Field(
        default="http://localhost:3000/courses/verify-course-payment"
    )
    payment_currency: str = Field(default="NGN")

    # Pricing
    # Amounts are held in the currency's minor unit (kobo); quantum 1 rounds to it.
    vat_rate: Decimal = Field(default=Decimal("0.075"))
    currency_quantum: Decimal = Field(default=Decimal("1"))

    # Settlement
    side_effect_timeout_seconds: float = Field(default=3.0)
    side_effect_workers: int = Field(default=4)
    reconcile_enabled: bool = Field(default=True)
    reconcile_interval_minutes: int = Field(default=10)
    reconcile_after_minutes: int = Field(default=15)
    reconcile_batch_size: int = Field(default=50)

    # Redis / rate limiting
    redis_url: Optional[str] = Field(default=None)
    rate_limit: str = Field(default="60/minute")

    # Telegram
    telegram_bot_token: str = Field(default="")
    telegram_admin_chat_id: str = Field(default="")
    telegram_notification_enabled: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="info")
    log_file: str = Field(default="logs/app.log")

    # ============================
    # Generic comma-separated parser
    # ============================
    @staticmethod
    def _parse_csv(value, default):
        if isinstance(value, str):
            items = [x.strip() for x in value.split(",") if x.strip()]
            return items if items else default
        if isinstance(value, list):
            return value
        return default

    @field_validator("cors_allowed_origins", mode="before")
    def validate_cors(cls, v):
        return cls._parse_csv(v, ["http://localhost:3000"])

    @field_validator("vat_rate", "currency_quantum")
    def validate_positive_decimal(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return "postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}".format(
            user=self.db_username,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_database,
        )

    @property
    def rate_limit_storage_uri(self) -> str:
        return self.redis_url or "memory://"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings():
    try:
        settings = Settings()
        logger.info("Settings loaded successfully")
        return settings
    except ValidationError as e:
        logger.error(f"Settings validation error: {e}")
        raise


settings = load_settings()
