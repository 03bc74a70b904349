"""
Configuration management for the archive server.

All process configuration is done via environment variables. Per-route
settings (bucket, credentials, thresholds) are NOT here: they live in each
route's route.json and are read by the RouteRegistry on every pass.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env variable names stable; deployments set them directly
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _default_data_dir() -> str:
    return os.path.join(os.path.expanduser("~"), "data")


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        data_dir: Directory holding one subdirectory per route
    """

    data_dir: str = field(default_factory=_default_data_dir)

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(data_dir=os.getenv("DATA_DIR", _default_data_dir()))


@dataclass(frozen=True)
class BatcherConfig:
    """Batcher loop configuration.

    Attributes:
        wake_timeout_seconds: Longest idle wait before a pass runs anyway
        scan_chunk_size: Directory entries read per chunk while scanning
        quarantine_after_failures: Passes an entry may fail before it is moved
            to quarantine/ (0 disables quarantine)
    """

    wake_timeout_seconds: float = 3600.0
    scan_chunk_size: int = 64
    quarantine_after_failures: int = 0

    @classmethod
    def from_env(cls) -> BatcherConfig:
        """Load configuration from environment variables."""
        return cls(
            wake_timeout_seconds=float(os.getenv("ARCHIVE_WAKE_TIMEOUT_SECONDS", "3600")),
            scan_chunk_size=int(os.getenv("ARCHIVE_SCAN_CHUNK_SIZE", "64")),
            quarantine_after_failures=int(os.getenv("ARCHIVE_QUARANTINE_AFTER_FAILURES", "0")),
        )


@dataclass(frozen=True)
class UploadConfig:
    """Object store upload configuration.

    Attributes:
        timeout_seconds: Hard deadline for a single store call
        max_retries: Retries after the first failed put
        retry_delay_ms: Initial backoff, doubled on every retry
        connect_timeout_seconds: TCP connect timeout for the S3 client
    """

    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_delay_ms: int = 500
    connect_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> UploadConfig:
        """Load configuration from environment variables."""
        return cls(
            timeout_seconds=float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "60")),
            max_retries=int(os.getenv("UPLOAD_MAX_RETRIES", "3")),
            retry_delay_ms=int(os.getenv("UPLOAD_RETRY_DELAY_MS", "500")),
            connect_timeout_seconds=float(os.getenv("UPLOAD_CONNECT_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Local storage configuration
        batcher: Batcher loop configuration
        upload: Upload configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    batcher: BatcherConfig = field(default_factory=BatcherConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If a setting is malformed or out of range.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            batcher=BatcherConfig.from_env(),
            upload=UploadConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.data_dir:
            raise ValueError("DATA_DIR must not be empty")
        if self.batcher.wake_timeout_seconds <= 0:
            raise ValueError("ARCHIVE_WAKE_TIMEOUT_SECONDS must be positive")
        if self.batcher.scan_chunk_size <= 0:
            raise ValueError("ARCHIVE_SCAN_CHUNK_SIZE must be positive")
        if self.batcher.quarantine_after_failures < 0:
            raise ValueError("ARCHIVE_QUARANTINE_AFTER_FAILURES must not be negative")
        if self.upload.timeout_seconds <= 0:
            raise ValueError("UPLOAD_TIMEOUT_SECONDS must be positive")
        if self.upload.max_retries < 0:
            raise ValueError("UPLOAD_MAX_RETRIES must not be negative")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "wake_timeout_seconds": self.batcher.wake_timeout_seconds,
                "scan_chunk_size": self.batcher.scan_chunk_size,
                "quarantine_after_failures": self.batcher.quarantine_after_failures,
                "upload_timeout_seconds": self.upload.timeout_seconds,
                "upload_max_retries": self.upload.max_retries,
                "log_level": self.observability.log_level,
            },
        )
