"""Runtime configuration, read from TRACKER_* environment variables or .env."""
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# file is tracker/app/settings.py -> parents[2] => project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DB_URL = f"sqlite:///{PROJECT_ROOT / 'tracker.db'}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRACKER_", env_file=".env", extra="ignore")

    database_url: str = DEFAULT_DB_URL
    store: Literal["sql", "memory"] = "sql"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    # reject scans after delivered/returned_to_sender
    strict_terminal: bool = False
    max_write_attempts: int = Field(default=3, ge=1)

    broadcast: bool = True
    broadcast_port: int = 37020


@lru_cache
def get_settings() -> Settings:
    return Settings()
