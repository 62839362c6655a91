"""Application settings loaded from environment variables."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """daychute configuration. All values come from ``DAYCHUTE_*`` variables."""

    # Storage layout
    data_dir: Path = Field(default=Path("data/daychute"))
    task_folder: str = Field(default="tasks")
    log_folder: str = Field(default="logs")
    day_state_folder: str = Field(default="days")

    # Clock (IANA name; empty means the system local zone)
    timezone: str = Field(default="")

    # Behaviour
    auto_migrate_idle: bool = Field(default=True)
    stats_enabled: bool = Field(default=True)

    # Notices
    default_notice_channel: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="DAYCHUTE_", env_file=_env_file(), env_file_encoding="utf-8"
    )

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

    def get_zone(self) -> ZoneInfo | None:
        """Parse TIMEZONE into a ZoneInfo, or None for the local zone."""
        if not self.timezone.strip():
            return None
        return ZoneInfo(self.timezone.strip())


settings = Settings()
