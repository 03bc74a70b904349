"""
Unit tests for environment configuration.
"""

import pytest

from archival.archive_server.config import (
    BatcherConfig,
    ServerConfig,
    StorageConfig,
    UploadConfig,
)


class TestServerConfig:
    """Tests for ServerConfig.from_env."""

    def test_defaults(self, monkeypatch, tmp_path):
        for name in [
            "ARCHIVE_WAKE_TIMEOUT_SECONDS",
            "ARCHIVE_SCAN_CHUNK_SIZE",
            "ARCHIVE_QUARANTINE_AFTER_FAILURES",
            "UPLOAD_TIMEOUT_SECONDS",
            "UPLOAD_MAX_RETRIES",
            "LOG_FORMAT",
        ]:
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("DATA_DIR", str(tmp_path))

        config = ServerConfig.from_env()

        assert config.storage.data_dir == str(tmp_path)
        assert config.batcher.wake_timeout_seconds == 3600
        assert config.batcher.quarantine_after_failures == 0
        assert config.upload.max_retries == 3
        assert config.observability.log_format == "json"

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ARCHIVE_WAKE_TIMEOUT_SECONDS", "30")
        monkeypatch.setenv("ARCHIVE_SCAN_CHUNK_SIZE", "8")
        monkeypatch.setenv("ARCHIVE_QUARANTINE_AFTER_FAILURES", "5")
        monkeypatch.setenv("UPLOAD_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("UPLOAD_MAX_RETRIES", "0")
        monkeypatch.setenv("UPLOAD_RETRY_DELAY_MS", "10")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.batcher == BatcherConfig(
            wake_timeout_seconds=30, scan_chunk_size=8, quarantine_after_failures=5
        )
        assert config.upload.timeout_seconds == 2.5
        assert config.upload.max_retries == 0
        assert config.upload.retry_delay_ms == 10
        assert config.observability.log_format == "text"

    @pytest.mark.parametrize(
        "config",
        [
            ServerConfig(storage=StorageConfig(data_dir="")),
            ServerConfig(batcher=BatcherConfig(wake_timeout_seconds=0)),
            ServerConfig(batcher=BatcherConfig(scan_chunk_size=0)),
            ServerConfig(batcher=BatcherConfig(quarantine_after_failures=-1)),
            ServerConfig(upload=UploadConfig(timeout_seconds=0)),
            ServerConfig(upload=UploadConfig(max_retries=-1)),
        ],
    )
    def test_validate_rejects(self, config):
        with pytest.raises(ValueError):
            config.validate()

    def test_bad_log_format(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("LOG_FORMAT", "xml")

        with pytest.raises(ValueError):
            ServerConfig.from_env()
