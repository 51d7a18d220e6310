"""Application configuration using pydantic-settings."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


_BACKEND_DIR = Path(__file__).parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _BACKEND_DIR.parent / ".env"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "blood_match"
    mongo_server_selection_timeout_ms: int = 5000

    # Live queries are re-polled at this interval
    live_query_interval_seconds: float = 2.0

    # Compare-and-set attempts for a single request update
    offer_max_attempts: int = 5

    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]


settings = Settings()
