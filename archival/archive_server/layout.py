"""
On-disk layout of the data directory.

    <data_dir>/<archive_id>/route.json        RouteConfig record
    <data_dir>/<archive_id>/error.txt         last upload failure (absent = healthy)
    <data_dir>/<archive_id>/incoming/<key> <micros>
    <data_dir>/<archive_id>/quarantine/<name> entries moved aside after repeated failures

Invariants:
    - Every committed file is written via a temp file plus rename
    - Temp files end in ".temp" and are ignored by every reader
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path

ROUTE_CONFIG_FILE = "route.json"
ERROR_FILE = "error.txt"
INCOMING_DIR = "incoming"
QUARANTINE_DIR = "quarantine"
TEMP_SUFFIX = ".temp"


def is_hidden_or_temp(name: str) -> bool:
    """Whether a directory entry is a hidden file or an in-flight temp file."""
    return name.startswith(".") or name.endswith(TEMP_SUFFIX) or name.endswith(".tmp")


def atomic_write(path: Path, data: bytes, hidden: bool = False) -> None:
    """Write data to path so readers see either the old or the new content.

    The temp file lives in the same directory so the final rename never
    crosses a filesystem boundary.

    Args:
        path: Destination path
        data: Bytes to write
        hidden: Prefix the temp name with "." (used inside queue directories)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    prefix = "." if hidden else ""
    tmp_path = path.parent / f"{prefix}{uuid.uuid4()}{TEMP_SUFFIX}"
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class DataLayout:
    """Resolves per-route paths under a data directory.

    Attributes:
        data_dir: Root directory holding one subdirectory per route
    """

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = Path(data_dir)

    def route_dir(self, archive_id: str) -> Path:
        """Directory owned by one route.

        Raises:
            ValueError: If archive_id could escape the data directory
        """
        if (
            not archive_id
            or archive_id in (".", "..")
            or "/" in archive_id
            or "\\" in archive_id
            or archive_id.startswith(".")
        ):
            raise ValueError(f"invalid archive id: {archive_id!r}")
        return self.data_dir / archive_id

    def config_path(self, archive_id: str) -> Path:
        return self.route_dir(archive_id) / ROUTE_CONFIG_FILE

    def error_path(self, archive_id: str) -> Path:
        return self.route_dir(archive_id) / ERROR_FILE

    def incoming_dir(self, archive_id: str) -> Path:
        return self.route_dir(archive_id) / INCOMING_DIR

    def quarantine_dir(self, archive_id: str) -> Path:
        return self.route_dir(archive_id) / QUARANTINE_DIR
