"""
Tests for transferflow.core.config module.
"""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from transferflow.core.config import (
    ApiConfig,
    EncryptionConfig,
    LoggingConfig,
    PollingConfig,
    StorageConfig,
    TransferFlowConfig,
    load_config,
)


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")


class TestApiConfig:
    """Tests for ApiConfig."""

    def test_trailing_slash_stripped(self) -> None:
        config = ApiConfig(base_url="http://backend/api/", callback_base_url="http://client/")
        assert config.base_url == "http://backend/api"
        assert config.callback_base_url == "http://client"

    def test_callback_url(self) -> None:
        config = ApiConfig(callback_base_url="https://transfer.example")
        assert config.callback_url("ServiceA") == "https://transfer.example/callback/ServiceA"


class TestPollingConfig:
    """Tests for PollingConfig."""

    def test_default_values(self) -> None:
        config = PollingConfig()
        assert config.interval_ms == 1500
        assert config.max_attempts == 20
        assert config.interval_seconds == 1.5

    def test_max_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            PollingConfig(max_attempts=0)


class TestEncryptionConfig:
    """Tests for EncryptionConfig."""

    def test_default_is_jwe(self) -> None:
        assert EncryptionConfig().scheme == "jwe"

    def test_cleartext_allowed(self) -> None:
        assert EncryptionConfig(scheme="cleartext").scheme == "cleartext"

    def test_unknown_scheme_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EncryptionConfig(scheme="rot13")


class TestTransferFlowConfig:
    """Tests for TransferFlowConfig."""

    def test_default_config(self) -> None:
        config = TransferFlowConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.api, ApiConfig)
        assert isinstance(config.polling, PollingConfig)
        assert isinstance(config.storage, StorageConfig)
        assert config.storage.state_key == "appstate"

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            original = TransferFlowConfig(
                polling=PollingConfig(interval_ms=500, max_attempts=5),
                encryption=EncryptionConfig(scheme="cleartext"),
            )
            original.save(config_path)

            loaded = TransferFlowConfig.load(config_path)

            assert loaded.polling.interval_ms == 500
            assert loaded.polling.max_attempts == 5
            assert loaded.encryption.scheme == "cleartext"

    def test_load_nonexistent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = TransferFlowConfig.load(Path(tmpdir) / "nonexistent.json")
            assert config.encryption.scheme == "jwe"

    def test_load_config_creates_directories(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            TransferFlowConfig(
                logging=LoggingConfig(log_directory=Path(tmpdir) / "logs"),
                storage=StorageConfig(state_directory=Path(tmpdir) / "state"),
            ).save(config_path)

            config = load_config(config_path)

            assert config.logging.log_directory.exists()
            assert config.storage.state_directory.exists()
