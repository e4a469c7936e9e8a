"""
TransferFlow configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_HOME = Path.home() / ".transferflow"


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: DEFAULT_HOME / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class ApiConfig(BaseModel):
    """Configuration for the backend transfer API."""

    base_url: str = "http://localhost:8080/api"
    callback_base_url: str = "http://localhost:3000"
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url", "callback_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def callback_url(self, service: str) -> str:
        """URL an external service redirects back to after authorization."""
        return f"{self.callback_base_url}/callback/{service}"


class PollingConfig(BaseModel):
    """Configuration for worker assignment polling."""

    interval_ms: int = Field(default=1500, ge=0, le=60000)
    max_attempts: int = Field(default=20, ge=1, le=1000)

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


class EncryptionConfig(BaseModel):
    """Configuration for credential packaging."""

    scheme: Literal["cleartext", "jwe"] = "jwe"


class StorageConfig(BaseModel):
    """Configuration for persisted transfer state."""

    state_directory: Path = Field(default_factory=lambda: DEFAULT_HOME / "state")
    state_key: str = Field(default="appstate", min_length=1)

    @field_validator("state_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class TransferFlowConfig(BaseModel):
    """Main TransferFlow configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> TransferFlowConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_HOME / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_HOME / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.storage.state_directory.mkdir(parents=True, exist_ok=True)


def get_default_config() -> TransferFlowConfig:
    """Get the default configuration."""
    return TransferFlowConfig()


def load_config(config_path: Path | None = None) -> TransferFlowConfig:
    """Load or create configuration."""
    config = TransferFlowConfig.load(config_path)
    config.ensure_directories()
    return config
