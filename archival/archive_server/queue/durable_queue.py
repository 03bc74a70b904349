"""
Directory-backed durable event queue.

Each route has an incoming/ directory holding one file per queued event.
Ingestion appends (temp file + rename, so a file is never partially
visible); the batcher scans, uploads and deletes.

Invariants:
    - Hidden and temp entries are never returned by a scan
    - Scans are memory-bounded while reading: entries are pulled in chunks
    - Nothing here deletes a file the caller did not name explicitly

How to change safely:
    - Producers and consumers share the directory with no lock; any new
      write path must keep the temp + rename discipline
"""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from ..errors import QueueUnreadableError
from ..layout import DataLayout, atomic_write, is_hidden_or_temp
from .naming import entry_name, object_prefix, split_entry_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    """A parsed queue filename.

    Attributes:
        name: Filename inside the incoming/ directory
        group_key: Batching key (spaces stand for "/")
        timestamp: Event time in microseconds
        path: Full path to the file
    """

    name: str
    group_key: str
    timestamp: int
    path: Path

    @property
    def object_prefix(self) -> str:
        return object_prefix(self.group_key)


class DurableQueue:
    """Per-route queue of event files.

    Example:
        >>> queue = DurableQueue(DataLayout("/var/lib/archive"))
        >>> queue.append("route-1", "dev-1 2024-05", 1715000000000000, b'{"a":1}')
        >>> queue.list_entries("route-1")
        ['dev-1 2024-05 1715000000000000']
    """

    def __init__(self, layout: DataLayout, chunk_size: int = 64) -> None:
        self.layout = layout
        self.chunk_size = chunk_size

    def list_entries(self, archive_id: str) -> list[str]:
        """Sorted names of the queued event files of a route.

        Raises:
            QueueUnreadableError: If the incoming directory is missing or unreadable
        """
        directory = self.layout.incoming_dir(archive_id)
        names: list[str] = []
        try:
            with os.scandir(directory) as it:
                while True:
                    chunk = list(itertools.islice(it, self.chunk_size))
                    if not chunk:
                        break
                    names.extend(e.name for e in chunk if not is_hidden_or_temp(e.name))
        except OSError as e:
            raise QueueUnreadableError(
                f"can't open incoming events for {archive_id}: {e}", archive_id=archive_id
            ) from e

        names.sort()
        return names

    def parse_entry(self, archive_id: str, name: str) -> QueueEntry:
        """Parse a queue filename of a route.

        Raises:
            EntryUnparsableError: If the name is not "<key> <micros>"
        """
        group_key, timestamp = split_entry_name(name)
        return QueueEntry(
            name=name,
            group_key=group_key,
            timestamp=timestamp,
            path=self.layout.incoming_dir(archive_id) / name,
        )

    def append(self, archive_id: str, group_key: str, timestamp: int, payload: bytes) -> str:
        """Atomically enqueue one event.

        Returns:
            Name of the queued file

        Raises:
            ValueError: If the key or timestamp would produce an unreadable entry
        """
        if not group_key or group_key.startswith("."):
            raise ValueError(f"invalid group key: {group_key!r}")
        if timestamp <= 0:
            raise ValueError(f"invalid timestamp: {timestamp}")
        name = entry_name(group_key, timestamp)
        atomic_write(self.layout.incoming_dir(archive_id) / name, payload, hidden=True)
        return name

    def remove(self, paths: Iterable[Path]) -> int:
        """Delete queued files, tolerating ones already gone.

        Returns:
            Number of files removed by this call
        """
        removed = 0
        for path in paths:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"can't remove archived file {path}: {e}")
        return removed

    def quarantine(self, archive_id: str, path: Path) -> Path | None:
        """Move a queued file aside into the route's quarantine/ directory."""
        target_dir = self.layout.quarantine_dir(archive_id)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / path.name
            os.replace(path, target)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"can't quarantine {path}: {e}")
            return None
        return target
