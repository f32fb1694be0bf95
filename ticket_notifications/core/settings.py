from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    NOTIFY_ENV: str = "development"
    NOTIFY_MODE: str = "api"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8085
    LOG_LEVEL: str = "INFO"
    API_CORS_ORIGINS: str = "*"
    EMAIL_FROM: str = "notifications@ticket-system.com"
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT_SECONDS: float = 10.0
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    STORE_TIMEOUT_SECONDS: float = 10.0
    QUEUE_SCHEMA: str = "pgmq"
    EVENTS_QUEUE_NAME: str = "event-notifications"
    RESERVATIONS_QUEUE_NAME: str = "reservation-notifications"
    REMINDERS_QUEUE_NAME: str = "reminder-notifications"
    QUEUE_BATCH_SIZE: int = 10
    QUEUE_WAIT_SECONDS: int = 10
    QUEUE_VISIBILITY_TIMEOUT_SECONDS: int = 30
    QUEUE_MAX_RECEIVE_COUNT: int = 0
    BULK_MAX_CONCURRENCY: int = 1
    WORKER_POLL_INTERVAL_SECONDS: int = 5

    @model_validator(mode="after")
    def validate_backends(self) -> "Settings":
        if not self.SUPABASE_URL.strip():
            raise ValueError("SUPABASE_URL must be configured")
        if not self.SUPABASE_SERVICE_ROLE_KEY.strip():
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be configured")
        if self.QUEUE_BATCH_SIZE < 1:
            raise ValueError("QUEUE_BATCH_SIZE must be at least 1")
        if self.NOTIFY_ENV.strip().lower() == "production":
            if not self.EMAIL_FROM.strip():
                raise ValueError("EMAIL_FROM must be configured in production")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.API_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
