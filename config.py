"""
Configuration management for MedAssist
"""

from typing import Optional
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "MedAssist"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./medassist.db"
    DATABASE_ECHO: bool = False

    # All HH:MM comparisons happen in this zone
    TIMEZONE: str = "Asia/Kolkata"

    # LLM Configuration (OpenAI-compatible chat completions, Groq by default)
    LLM_BASE_URL: str = "https://api.groq.com/openai/v1"
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_VISION_MODEL: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    LLM_TEMPERATURE: float = 0.2
    LLM_MAX_TOKENS: int = 1024
    LLM_TIMEOUT_SECONDS: int = 30

    # Messaging (Telegram Bot API)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = None

    # Operations endpoints (jobs); open when unset
    API_KEY: Optional[str] = None

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    RECONCILIATION_TIME: str = "23:55"
    RECONCILIATION_APPLY_DAY_GATE: bool = False
    WEEKLY_REPORT_WEEKDAY: int = 6  # Monday=0 ... Sunday=6
    WEEKLY_REPORT_TIME: str = "20:00"
    APPOINTMENT_LOOKAHEAD_HOURS: int = 24
    PENDING_CONFIRMATION_TTL_MINUTES: int = 30
    PENDING_SWEEP_INTERVAL_MINUTES: int = 5

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class SchedulingConfig:
    """Fixed constants of the scheduling engine"""

    SNOOZE_MINUTES: int = 10
    REPORT_WINDOW_DAYS: int = 7

    DEFAULT_TIME: str = "09:00"

    # Name-based time inference, checked in order
    TIME_INFERENCE_RULES: list[tuple[tuple[str, ...], str]] = [
        (
            ("sleep", "night", "bed", "melatonin", "zolpidem", "ambien",
             "trazodone", "temazepam", "diphenhydramine", "doxylamine"),
            "22:00",
        ),
        (("morning", "thyroid", "levothyroxine", "vitamin"), "08:00"),
        (("lunch", "afternoon"), "13:00"),
        (("dinner", "evening"), "19:00"),
    ]

    # Frequency keywords, checked in order
    FREQUENCY_KEYWORDS: list[tuple[tuple[str, ...], int]] = [
        (("daily", "every day"), 1),
        (("other day", "alternate"), 2),
        (("weekly",), 7),
    ]


# Database table names
class TableNames:
    MEDICATIONS = "medications"
    ADHERENCE_LOGS = "adherence_logs"
    CAREGIVERS = "caregivers"
    APPOINTMENTS = "appointments"
    HEALTH_LOGS = "health_logs"


settings = get_settings()
scheduling_config = SchedulingConfig()
