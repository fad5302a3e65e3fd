"""Application settings loaded from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_REMOTE_SCHEMES = ("libsql://", "https://", "http://", "wss://", "ws://")


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


@dataclass(frozen=True)
class StorageLocation:
    """Where the record store lives.

    ``sync_url`` is set only for remote-backed storage; ``local_path`` is then
    the embedded replica that mirrors it.
    """

    local_path: Path
    sync_url: str = ""
    auth_token: str = ""

    @property
    def is_remote(self) -> bool:
        return bool(self.sync_url)


class Settings(BaseSettings):
    """Brain memory configuration. All values come from environment variables."""

    # Storage
    storage_url: str = Field(default="file://data/brain-memory.db")
    storage_auth_token: str = Field(default="")
    replica_path: Path = Field(default=Path("data/brain-replica.db"))

    # Remote mirror
    sync_max_attempts: int = Field(default=3)
    sync_backoff_seconds: float = Field(default=1.0)

    # Anthropic (summarization)
    anthropic_api_key: str = Field(default="")
    anthropic_base_url: str = Field(default="")
    summarizer_model: str = Field(default="claude-haiku-4-5-20251001")
    summarizer_max_tokens: int = Field(default=1024)
    summarizer_temperature: float = Field(default=0.3)

    # Consolidation
    consolidation_enabled: bool = Field(default=True)
    # Runs late in the day: a cycle only consumes messages from the day it starts in
    consolidation_schedule: str = Field(default="55 23 * * *")
    consolidation_timeout_seconds: float = Field(default=120.0)
    consolidation_context_size: int = Field(default=20)

    # Day boundaries, naive dates and the cron trigger all use this zone
    memory_timezone: str = Field(default="UTC")

    # Search
    search_default_limit: int = Field(default=20)

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
    def summarizer_configured(self) -> bool:
        return bool(self.anthropic_api_key.strip())

    def get_storage_location(self) -> StorageLocation:
        """Parse STORAGE_URL into a local path and an optional sync target."""
        url = self.storage_url.strip()
        if url.startswith(_REMOTE_SCHEMES):
            return StorageLocation(
                local_path=self.replica_path,
                sync_url=url,
                auth_token=self.storage_auth_token,
            )
        if url.startswith("file://"):
            url = url[len("file://") :]
        return StorageLocation(local_path=Path(url or "data/brain-memory.db"))


settings = Settings()
