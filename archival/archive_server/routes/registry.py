"""
Route configuration registry.

Each route keeps its configuration in <data_dir>/<archive_id>/route.json.
Ingestion writes it (on every accepted event, usually unchanged); the
batcher reads it fresh at the start of every pass over the route so that
updated buckets, credentials or thresholds take effect on the next pass.

Invariants:
    - Writes are atomic (temp file + rename) and skipped when unchanged
    - Readers never cache a RouteConfig across passes
    - Secrets (key_secret) never appear in logs or repr

How to change safely:
    - Add new fields with defaults; existing route.json files must still load
    - Never rename JSON keys, ingestion and batcher may run different versions
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any

from ..errors import ConfigMissingError, ConfigParseError
from ..layout import DataLayout, atomic_write, is_hidden_or_temp

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_EVERY_MINS = 1440
DEFAULT_ARCHIVE_COUNT_EXCEEDS = 1000
DEFAULT_FILE_FORMAT = "array"
DEFAULT_FILE_FOLDER = "[device]/[year]-[month]"


@dataclass(frozen=True)
class RouteConfig:
    """Configuration of one archive route.

    Attributes:
        archive_id: Route identifier, also the route directory name
        archive_every_mins: Flush a group once its oldest event is this old
        archive_count_exceeds: Flush a group once it holds this many events
        bucket_endpoint: Custom S3 endpoint (None for AWS)
        bucket_name: Target bucket
        bucket_region: Target region
        key_id: Static access key id
        key_secret: Static secret access key
        file_format: "array", "object:<field>" or "ndjson"
        file_folder: Group key template, see queue.naming
    """

    archive_id: str
    bucket_name: str
    archive_every_mins: int = DEFAULT_ARCHIVE_EVERY_MINS
    archive_count_exceeds: int = DEFAULT_ARCHIVE_COUNT_EXCEEDS
    bucket_endpoint: str | None = None
    bucket_region: str = "us-east-1"
    key_id: str = ""
    key_secret: str = field(default="", repr=False)
    file_format: str = DEFAULT_FILE_FORMAT
    file_folder: str = DEFAULT_FILE_FOLDER

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    def to_json(self) -> bytes:
        """Stable compact encoding, so unchanged configs compare equal."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouteConfig:
        """Create from dictionary, applying defaults for absent fields.

        Raises:
            ValueError: If a required field is missing or a field has the wrong type
        """
        archive_id = data.get("archive_id")
        if not isinstance(archive_id, str) or not archive_id:
            raise ValueError("archive_id not specified")
        bucket_name = data.get("bucket_name")
        if not isinstance(bucket_name, str) or not bucket_name:
            raise ValueError("bucket_name not specified")

        def _int(name: str, default: int) -> int:
            value = data.get(name)
            if value is None:
                return default
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            return value

        def _str(name: str, default: str) -> str:
            value = data.get(name)
            if value is None or value == "":
                return default
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string")
            return value

        every = _int("archive_every_mins", DEFAULT_ARCHIVE_EVERY_MINS)
        if every <= 0:
            every = DEFAULT_ARCHIVE_EVERY_MINS
        count = _int("archive_count_exceeds", DEFAULT_ARCHIVE_COUNT_EXCEEDS)
        if count <= 0:
            count = DEFAULT_ARCHIVE_COUNT_EXCEEDS

        endpoint = data.get("bucket_endpoint") or None
        if endpoint is not None and not isinstance(endpoint, str):
            raise ValueError("bucket_endpoint must be a string")

        return cls(
            archive_id=archive_id,
            bucket_name=bucket_name,
            archive_every_mins=every,
            archive_count_exceeds=count,
            bucket_endpoint=endpoint,
            bucket_region=_str("bucket_region", "us-east-1"),
            key_id=_str("key_id", ""),
            key_secret=_str("key_secret", ""),
            file_format=_str("file_format", DEFAULT_FILE_FORMAT),
            file_folder=_str("file_folder", DEFAULT_FILE_FOLDER),
        )


class RouteRegistry:
    """Reads and writes route.json records under a data directory.

    Example:
        >>> registry = RouteRegistry(DataLayout("/var/lib/archive"))
        >>> rc = registry.load("my-route")
        >>> rc.bucket_name
        'events'
    """

    def __init__(self, layout: DataLayout) -> None:
        self.layout = layout

    def list_routes(self) -> list[str]:
        """Sorted route ids present in the data directory."""
        try:
            with os.scandir(self.layout.data_dir) as it:
                names = [
                    entry.name
                    for entry in it
                    if not is_hidden_or_temp(entry.name) and entry.is_dir()
                ]
        except FileNotFoundError:
            return []
        return sorted(names)

    def load(self, archive_id: str) -> RouteConfig:
        """Load the committed configuration of a route.

        Raises:
            ConfigMissingError: If route.json does not exist or cannot be read
            ConfigParseError: If route.json is not a valid RouteConfig
        """
        path = self.layout.config_path(archive_id)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise ConfigMissingError(
                f"can't read {archive_id} config file: {e}", archive_id=archive_id
            ) from e

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ConfigParseError(
                f"can't parse {archive_id} config file: {e}", archive_id=archive_id
            ) from e
        if not isinstance(data, dict):
            raise ConfigParseError(
                f"{archive_id} config file is not a JSON object", archive_id=archive_id
            )

        try:
            return RouteConfig.from_dict(data)
        except ValueError as e:
            raise ConfigParseError(
                f"invalid {archive_id} config: {e}", archive_id=archive_id
            ) from e

    def save(self, config: RouteConfig) -> bool:
        """Atomically write a route configuration.

        Returns:
            True if the file was written, False if it was already identical
        """
        path = self.layout.config_path(config.archive_id)
        encoded = config.to_json()
        try:
            if path.read_bytes() == encoded:
                return False
        except FileNotFoundError:
            pass

        atomic_write(path, encoded)
        logger.debug("Route config written", extra={"archive_id": config.archive_id})
        return True
