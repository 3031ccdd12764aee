"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Schedule monitor configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/schedule_monitor.db"))

    # Schedule declarations (YAML) used by the CLI
    schedule_file: Path = Field(default=Path("schedule.yaml"))
    scheduler_timezone: str = Field(default="UTC")

    # Remote monitor. An empty site id disables remote sync entirely
    monitor_sync_enabled: bool = Field(default=True)
    monitor_site_id: str | None = Field(default=None)
    monitor_api_token: str = Field(default="")
    monitor_api_url: str = Field(default="https://ohdear.app/api")
    monitor_ping_url: str = Field(default="https://ping.ohdear.app")
    monitor_ping_token: str = Field(default="")
    monitor_timeout_seconds: float = Field(default=10.0, gt=0)

    # Checks
    default_grace_time_in_minutes: int = Field(default=5, ge=0)

    # Log items
    delete_log_items_older_than_days: int = Field(default=30, ge=0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def remote_sync_configured(self) -> bool:
        """True when remote sync is switched on and a site id is set."""
        return self.monitor_sync_enabled and bool((self.monitor_site_id or "").strip())

    def get_ping_token(self) -> str:
        """Token used to build ping URLs. Falls back to the site id."""
        return self.monitor_ping_token.strip() or (self.monitor_site_id or "").strip()


settings = Settings()
