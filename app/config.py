"""
Runtime configuration.

Values come from the environment (optionally a .env file in the project root).
Field names map to upper-case variables: database_url <- DATABASE_URL, etc.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

project_root = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Service settings."""
    database_url: str = f"sqlite:///{project_root / 'kanban.db'}"
    db_echo: bool = False
    log_level: str = "INFO"

    # Event log / sync
    event_buffer_size: int = 500
    sync_heartbeat_interval: float = 30.0

    # Outbound webhooks
    webhook_timeout: float = 10.0

    # Scheduler
    scheduler_enabled: bool = True
    due_sweep_interval: float = 60.0
    due_soon_window_minutes: int = 60
    overdue_grace_minutes: int = 60
    automation_log_retention_days: int = 7

    model_config = SettingsConfigDict(
        env_file=project_root / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once per process."""
    return Settings()
