"""
Error types for the archive server.

This module defines all exception types raised while archiving:
- ArchiveError: Base exception
- ConfigMissingError / ConfigParseError: route.json problems
- QueueUnreadableError: Queue directory cannot be listed
- EntryUnparsableError: Queue filename is not "<key> <micros>"
- DecodeError: A queued event could not be read or decoded
- UnsupportedFormatError: Route asks for an unknown file format
- UploadError: Object store rejected or did not answer the upload
- IngestError: Ingestion helper refused an event

Invariants:
    - All errors inherit from ArchiveError
    - Errors carry the route or path they concern in details
    - Messages never contain credentials
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ArchiveError(Exception):
    """Base exception for all archive server errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ARCHIVE_ERROR"
        self.details = details or {}


class ConfigMissingError(ArchiveError):
    """Route configuration file does not exist or cannot be read."""

    def __init__(self, message: str, archive_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIG_MISSING",
            details={"archive_id": archive_id},
        )
        self.archive_id = archive_id


class ConfigParseError(ArchiveError):
    """Route configuration file exists but is not a valid RouteConfig."""

    def __init__(self, message: str, archive_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIG_PARSE_ERROR",
            details={"archive_id": archive_id},
        )
        self.archive_id = archive_id


class QueueUnreadableError(ArchiveError):
    """Queue directory for a route is missing or cannot be listed."""

    def __init__(self, message: str, archive_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="QUEUE_UNREADABLE",
            details={"archive_id": archive_id},
        )
        self.archive_id = archive_id


class EntryUnparsableError(ArchiveError):
    """Queue filename cannot be split into group key and timestamp.

    Raised when:
    - The name has no space separator
    - The timestamp part is not an integer
    - The timestamp is zero or negative
    """

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="ENTRY_UNPARSABLE",
            details={"name": name},
        )
        self.name = name


class DecodeError(ArchiveError):
    """A queued event file could not be read or is not a JSON object."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={"path": path},
        )
        self.path = path


class UnsupportedFormatError(ArchiveError):
    """Route file_format is not array, object:<field> or ndjson."""

    def __init__(self, file_format: str) -> None:
        super().__init__(
            f"invalid file format: {file_format}",
            code="UNSUPPORTED_FORMAT",
            details={"file_format": file_format},
        )
        self.file_format = file_format


class UploadError(ArchiveError):
    """Upload to the object store failed.

    Raised when:
    - Credentials are rejected
    - The endpoint is unreachable or times out
    - The store refuses the object after all retries
    """

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(
            message,
            code="UPLOAD_ERROR",
            details={"bucket": bucket, "key": key, "attempts": attempts},
        )
        self.bucket = bucket
        self.key = key
        self.attempts = attempts


class IngestError(ArchiveError):
    """Ingestion helper refused an event or route configuration."""

    def __init__(self, message: str, archive_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INGEST_ERROR",
            details={"archive_id": archive_id},
        )
        self.archive_id = archive_id
