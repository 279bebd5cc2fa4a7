"""Application settings and configuration management."""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STAKEBOARD_",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis (key-value store, settlement locks, Celery broker)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    key_prefix: str = Field(
        default="stakeboard",
        description="Prefix applied to every key written to the store",
    )

    # Settlement
    settlement_lock_timeout: float = Field(
        default=60.0,
        description="Seconds before a held settlement lock expires",
    )
    settlement_lock_blocking_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for a busy settlement lock before giving up",
    )

    # Application
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Paths
    config_path: Path = Field(
        default=Path(__file__).parent / "defaults.yaml",
        description="Path to defaults.yaml configuration",
    )

    def load_defaults_config(self) -> dict[str, Any]:
        """Load the defaults.yaml configuration file."""
        if self.config_path.exists():
            with open(self.config_path) as f:
                return yaml.safe_load(f) or {}
        return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


@lru_cache
def get_defaults() -> dict[str, Any]:
    """Get cached domain defaults from defaults.yaml."""
    return get_settings().load_defaults_config()
