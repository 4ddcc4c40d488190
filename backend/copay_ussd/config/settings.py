# /copay_ussd/config/settings.py

import sys
from typing import Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Service
    service_name: str = "Co-Pay USSD Gateway"
    version: str = "1.0.0"
    environment: str = "production"
    workers: int = 4

    # Session store
    session_backend: Literal["redis", "memory"] = "redis"
    session_ttl_seconds: int = 300
    session_key_prefix: str = "ussd_session:"
    # Bound on one whole request cycle. With the session delete and the alert
    # after it, a failed request still answers inside the 30 s HTTP timeout.
    request_timeout_seconds: float = 22.0

    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_socket_timeout: float = 3.0

    # MongoDB (shared with the Co-Pay backend)
    mongo_uri: str = "mongodb://localhost:27017/copay"
    max_pool_size: int = 10
    min_pool_size: int = 1
    mongo_ssl: bool = False

    # Payments API
    payments_api_url: str = "http://localhost:3000/api/v1"
    payments_api_key: str | None = None
    payment_timeout_seconds: float = 20.0
    default_payment_channel: str = "MOBILE_MONEY_MTN"

    # USSD presentation
    currency: str = "RWF"
    max_menu_items: int = 9
    recent_payments_limit: int = 3
    support_email: str = "support@copay.rw"
    support_phone: str = "+250788000000"

    # Security
    api_key: str | None = None

    # HTTP
    cors_allowed_origins: str = ""
    allowed_hosts: str = "*"
    rate_limit_per_minute: int = 120

    # Observability
    alerting_webhook_url: str | None = None

    # ---------------- Validators ---------------- #

    @field_validator("redis_url")
    @classmethod
    def redis_url_must_have_scheme(cls, v: str) -> str:
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must start with redis://, rediss:// or unix://")
        return v

    @field_validator("payments_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("max_menu_items")
    @classmethod
    def menu_fits_single_digit(cls, v: int) -> int:
        if not 1 <= v <= 9:
            raise ValueError("MAX_MENU_ITEMS must be between 1 and 9")
        return v

    @field_validator("session_ttl_seconds", "payment_timeout_seconds", "request_timeout_seconds", "redis_socket_timeout")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def validate_environment(settings_obj: Settings):
    try:
        if settings_obj.environment == "production":
            if settings_obj.session_backend != "redis":
                raise ValueError("SESSION_BACKEND must be 'redis' in production")
            if not settings_obj.payments_api_key:
                raise ValueError("PAYMENTS_API_KEY is required in production")

        if settings_obj.payment_timeout_seconds >= settings_obj.request_timeout_seconds:
            raise ValueError("PAYMENT_TIMEOUT_SECONDS must be below REQUEST_TIMEOUT_SECONDS")
        if settings_obj.request_timeout_seconds >= 30:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be below the 30 s HTTP request timeout")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
