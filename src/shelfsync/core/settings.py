"""Centralized configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the working directory: .env, .env.local, .env.dev/.env.test/.env.prod

Every tunable that matters for tests (poll interval, poll timeout, cooldowns)
is also accepted as a constructor parameter by the components themselves; see
`SyncConfig`. The settings object is only the default source for those values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Typed configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `SHELFSYNC_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    data_dir : Path
        Root directory for every file this engine owns.
    api_base_url : str
        Base URL of the remote document service.
    api_token : Optional[str]
        Bearer token used when no other token provider is injected.
    user_id : Optional[str]
        Owner id used for the document listing endpoint.
    require_unmetered : bool
        When true, automatic downloads only start on an unmetered (Wi-Fi) link.
    """

    environment: EnvName = Field(default="dev", alias="SHELFSYNC_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")

    data_dir: Path = Field(default=Path(".shelfsync"), alias="SHELFSYNC_DATA_DIR")
    api_base_url: str = Field(default="http://localhost:8080/api", alias="SHELFSYNC_API_BASE_URL")
    api_token: str | None = Field(default=None, alias="SHELFSYNC_API_TOKEN")
    user_id: str | None = Field(default=None, alias="SHELFSYNC_USER_ID")
    http_timeout: float = Field(default=20.0, gt=0, alias="SHELFSYNC_HTTP_TIMEOUT")

    require_unmetered: bool = Field(default=True, alias="SHELFSYNC_REQUIRE_UNMETERED")
    poll_interval: float = Field(default=2.0, gt=0, alias="SHELFSYNC_POLL_INTERVAL")
    poll_timeout: float = Field(default=45.0, gt=0, alias="SHELFSYNC_POLL_TIMEOUT")
    monitor_interval: float = Field(default=3.0, gt=0, alias="SHELFSYNC_MONITOR_INTERVAL")
    auto_download_cooldown: float = Field(
        default=12.0, ge=0, alias="SHELFSYNC_AUTO_DOWNLOAD_COOLDOWN"
    )
    max_storage_mb: int = Field(default=50, gt=0, alias="SHELFSYNC_MAX_STORAGE_MB")

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_dev(self) -> bool:
        """Return True if running in the development environment."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)

    def sync_config(self) -> SyncConfig:
        """Project the timing/policy knobs into a plain `SyncConfig`."""
        return SyncConfig(
            require_unmetered=self.require_unmetered,
            poll_interval=self.poll_interval,
            poll_timeout=self.poll_timeout,
            monitor_interval=self.monitor_interval,
            auto_download_cooldown=self.auto_download_cooldown,
            max_storage_mb=self.max_storage_mb,
        )


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Timing and policy parameters for the coordinator and reconciler.

    Kept separate from `Settings` so tests can build one inline with tiny
    intervals without touching the environment.
    """

    require_unmetered: bool = True
    poll_interval: float = 2.0
    poll_timeout: float = 45.0
    monitor_interval: float = 3.0
    auto_download_cooldown: float = 12.0
    max_storage_mb: int = 50

    @property
    def max_storage_bytes(self) -> int:
        return self.max_storage_mb * 1024 * 1024


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    Kept behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    os.environ.setdefault("SHELFSYNC_ENV", "dev")
    return Settings()


settings: Settings = load_settings()


def get_logger(name: str = "shelfsync") -> logging.Logger:
    """Return a process-global logger configured to the current `LOG_LEVEL`."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
