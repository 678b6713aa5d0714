from datetime import date
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./practice_analytics.db"

    # Pins "today" for the historical/projected boundary; unset means the system clock
    analytics_anchor_date: Optional[date] = None

    # Seed for jitter; unset means a fresh unseeded generator per request
    analytics_random_seed: Optional[int] = None

    # JSON file overriding any canonical business parameter
    canonical_parameters_path: Optional[str] = None

    # LLM (OpenAI) for the analytics assistant
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # CORS configuration - comma-separated list of allowed origins
    # Example: "https://dashboard.example.com,https://admin.example.com"
    cors_allowed_origins: Optional[str] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def get_cors_origins(self) -> list[str]:
        """Local dashboard origin plus any configured ones, without trailing slashes."""
        origins = ["http://localhost:5000"]
        for origin in (self.cors_allowed_origins or "").split(","):
            cleaned = origin.strip().rstrip("/")
            if cleaned and cleaned not in origins:
                origins.append(cleaned)
        return origins


@lru_cache()
def get_settings() -> Settings:
    return Settings()
