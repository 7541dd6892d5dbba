from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from loguru import logger
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console

console = Console()
log = logger.bind(module="config")


class Settings(BaseSettings):
    """Centralised client configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="boulder-console", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    origin: str = Field(default="http://127.0.0.1:9001", alias="CONSOLE_ORIGIN")
    api_base_path: str = Field(default="/api", alias="CONSOLE_API_BASE_PATH")
    timeout_seconds: float = Field(default=10.0, alias="CONSOLE_TIMEOUT_SECONDS")
    logout_timeout_seconds: float = Field(default=2.0, alias="CONSOLE_LOGOUT_TIMEOUT_SECONDS")
    include_credentials: bool = Field(default=True, alias="CONSOLE_INCLUDE_CREDENTIALS")
    download_dir: Path = Field(default=Path("downloads"), alias="CONSOLE_DOWNLOAD_DIR")
    language: str = Field(default="en", alias="CONSOLE_LANGUAGE")

    username: str | None = Field(default=None, alias="CONSOLE_USERNAME")
    password: str | None = Field(default=None, alias="CONSOLE_PASSWORD")

    @computed_field(return_type=str)
    @property
    def api_base_url(self) -> str:
        """Return the API base URL resolved against the serving origin."""
        origin = (self.origin or "").strip().rstrip("/") + "/"
        return urljoin(origin, (self.api_base_path or "").strip().lstrip("/"))

    def export_safe(self) -> dict[str, Any]:
        """Return non-sensitive settings for debugging/logging."""
        return {
            "app_name": self.app_name,
            "api_base_url": self.api_base_url,
            "timeout_seconds": self.timeout_seconds,
            "logout_timeout_seconds": self.logout_timeout_seconds,
            "include_credentials": self.include_credentials,
            "download_dir": str(self.download_dir),
            "language": self.language,
            "username": self.username,
        }


@lru_cache
def get_settings() -> Settings:
    """Load and cache client settings."""
    settings = Settings()
    console.log(
        f"[bold green]Loaded settings[/] api_base_url={settings.api_base_url!r}",
    )
    log.info("Settings initialised: {}", settings.export_safe())
    return settings
