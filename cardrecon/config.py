# cardrecon/config.py

from typing import Literal
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "CardRecon API"
    app_env: str = "development"
    debug: bool = True
    frontend_url: str = "http://localhost:5173"
    log_level: str = "INFO"

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # Storage
    store_backend: Literal["supabase", "memory"] = "supabase"

    # Matching defaults (request defaults only - the engine takes explicit values)
    date_tolerance_days: int = 2
    amount_tolerance_percent: float = 2.0
    matching_confidence_threshold: int = 70  # UI coloring only
    matching_trigger: Literal["manual", "on_upload"] = "on_upload"

    # VAT
    default_vat_percent: float = 18.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
