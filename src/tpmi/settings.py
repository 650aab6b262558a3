"""Application settings for tpmi."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tpmi.runtime_config import DEFAULT_CATALOG_URL, load_runtime_config


class Settings(BaseSettings):
    """Runtime settings for the catalog service."""

    model_config = SettingsConfigDict(
        env_prefix="TPMI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    catalog_url: str = DEFAULT_CATALOG_URL
    fetch_timeout_s: float = Field(default=5.0, gt=0)
    cache_dir: str = "data/tpmi"
    min_fetch_interval_minutes: float = Field(default=60.0, ge=0)
    log_level: str = "INFO"

    @property
    def min_fetch_interval(self) -> timedelta:
        return timedelta(minutes=self.min_fetch_interval_minutes)

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()

    @classmethod
    def from_runtime(cls, config_path: Path | None = None) -> Settings:
        """Construct settings from the TOML runtime config.

        `TPMI_*` environment variables still win over file values.
        """
        runtime = load_runtime_config(config_path)
        values = {
            "catalog_url": runtime.catalog_url,
            "fetch_timeout_s": runtime.timeout_s,
            "cache_dir": str(runtime.cache_dir),
            "min_fetch_interval_minutes": runtime.min_interval_minutes,
            "log_level": runtime.log_level,
        }
        # Init kwargs outrank env in pydantic-settings; drop the ones env overrides.
        env_overridden = cls().model_fields_set
        return cls(**{key: value for key, value in values.items() if key not in env_overridden})
