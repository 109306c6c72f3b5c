"""Configuration from .env file."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    GENERATION_TIMEOUT_SECONDS: float = 30.0

    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_KEY: str | None = None

    STORE_BACKEND: Literal["json", "supabase"] = "json"
    DATA_DIR: str = "data"

    SESSION_WINDOW_DAYS: int = 14  # Trailing window for pattern/velocity analysis
    ATTEMPT_HISTORY_LIMIT: int = 20  # Attempts fetched per skill
    VELOCITY_WINDOW_DAYS: int = 7
    LOCAL_TIMEZONE: str = "UTC"  # IANA name; splits morning/afternoon sessions

    # On-demand analysis realizes at most this many urgent/high interventions.
    GENERATE_TOP_N: int = 3

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
