from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Academy API"
    APP_VERSION: str = "1.4.0"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./academy.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 15.0

    # Redis (Celery broker/backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # JWT
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # SMS gateway
    SMS_PROVIDER: Literal["taqnyat", "mock"] = "mock"
    SMS_API_URL: str = "https://api.taqnyat.sa/v1/messages"
    SMS_API_KEY: str = ""
    SMS_SENDER: str = "Academy"
    SMS_TIMEOUT_SECONDS: float = 10.0

    # Scheduling
    DEFAULT_LANGUAGE: Literal["ar", "en"] = "ar"
    WAITLIST_RESPONSE_HOURS: int = 48
    RECURRENCE_WEEKS_AHEAD: int = 12
    RECURRING_SESSION_MAX_WEEKS: int = 52

    # Observability (GlitchTip/Sentry)
    GLITCHTIP_DSN: str = ""
    GLITCHTIP_TRACES_SAMPLE_RATE: float = 0.2
    GLITCHTIP_PROFILES_SAMPLE_RATE: float = 0.1

    @property
    def sms_enabled(self) -> bool:
        """Check if a real SMS provider is configured."""
        return self.SMS_PROVIDER != "mock" and bool(self.SMS_API_KEY)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
