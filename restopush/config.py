from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./restopush.db"

    # JWT (tokens are issued by the external auth provider)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # Expo push gateway
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    EXPO_ACCESS_TOKEN: str | None = None
    PUSH_REQUEST_TIMEOUT: float = 10.0
    PUSH_BATCH_SIZE: int = 100

    # Delivery policy
    RESTAURANT_TIMEZONE: str = "Europe/Berlin"
    QUIET_HOURS_START: int = 21
    QUIET_HOURS_END: int = 11
    DUE_BATCH_LIMIT: int = 50
    STALE_AFTER_HOURS: int = 24
    RETENTION_DAYS: int = 90
    TOKEN_RETENTION_DAYS: int = 30
    CLAIM_LEASE_MINUTES: int = 15
    DISPATCH_MAX_ATTEMPTS: int = 3
    DISPATCH_BACKOFF_SECONDS: float = 1.0
    RECORD_DELIVERY_FAILURES: bool = True

    LOG_LEVEL: str = "INFO"

    @field_validator("RESTAURANT_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v):
        """Reject zone names the tz database doesn't know about."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown IANA timezone: {v}")
        return v

    @field_validator("QUIET_HOURS_START", "QUIET_HOURS_END")
    @classmethod
    def validate_hour(cls, v):
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("PUSH_BATCH_SIZE")
    @classmethod
    def validate_batch_size(cls, v):
        # Expo rejects requests with more than 100 messages
        if not 1 <= v <= 100:
            raise ValueError(f"PUSH_BATCH_SIZE must be between 1 and 100, got {v}")
        return v

    @field_validator(
        "DUE_BATCH_LIMIT",
        "STALE_AFTER_HOURS",
        "RETENTION_DAYS",
        "TOKEN_RETENTION_DAYS",
        "CLAIM_LEASE_MINUTES",
        "DISPATCH_MAX_ATTEMPTS",
    )
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    model_config = ConfigDict(env_file=".env")


settings = Settings()
