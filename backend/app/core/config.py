# app/core/config.py
"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import json
from pydantic import field_validator


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """

    # Application
    APP_NAME: str = "Courtline"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # JWT Authentication (tokens are issued by the identity service)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: str = '["http://localhost:5173"]'

    # Reconciliation scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"
    STATUS_SWEEP_INTERVAL_SECONDS: int = 30
    REMINDER_SWEEP_INTERVAL_SECONDS: int = 60
    SCHEDULER_MISFIRE_GRACE_SECONDS: int = 30

    # Hearing reminders
    REMINDER_DEDUP_WINDOW_MINUTES: int = 10
    REMINDER_LOOKAHEAD_MINUTES: int = 5
    REMINDER_LOOKBACK_MINUTES: int = 5

    # Hearings
    HEARING_MIN_DURATION_MINUTES: int = 2
    HEARING_MAX_DURATION_MINUTES: int = 180
    HEARING_DEFAULT_DURATION_MINUTES: int = 60
    VIRTUAL_HEARING_BASE_URL: str = "https://hearings.courtline.example/meeting"

    # Cases
    CASE_NUMBER_PREFIX: str = "CL"

    @field_validator("CASE_NUMBER_PREFIX", mode="before")
    @classmethod
    def normalize_case_prefix(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from string to list"""
        try:
            if isinstance(self.CORS_ORIGINS, str):
                return json.loads(self.CORS_ORIGINS)
            return self.CORS_ORIGINS
        except json.JSONDecodeError:
            return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def hearing_duration_bounds(self) -> tuple[int, int]:
        return self.HEARING_MIN_DURATION_MINUTES, self.HEARING_MAX_DURATION_MINUTES


# Create settings instance
settings = Settings()
