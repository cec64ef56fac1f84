from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(str, Enum):
    DEV = "dev"
    HML = "hml"
    PROD = "prod"


class Settings(BaseSettings):
    APP_ENV: Env = Env.DEV
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite:///./tutoring.db"

    # Wall-clock zone for availability windows (HH:MM) and naive datetimes
    SCHEDULE_TZ: str = "UTC"
    MIN_SESSION_MINUTES: int = 60

    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"

    # If False, the engine falls back to a log-only notifier
    NOTIFICATIONS_ENABLED: bool = True

    model_config = SettingsConfigDict(
        env_file=".env.dev",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# cria instância global
settings = Settings()
