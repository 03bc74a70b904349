"""
Grouping of queued events into archive batches.

A pass over a route turns the current directory listing into batches, one
per group key, and decides per batch whether it is due. Nothing is kept
between passes; every pass rebuilds its batches from the directory.

Entries are ordered by (group key, timestamp, name) and accumulated in an
explicit key -> Batch mapping. A batch is closed as soon as a different key
arrives, and a terminal sentinel closes the last one, so the tail of the
scan needs no special case.

Invariants:
    - Each group key yields exactly one batch per pass
    - Batch.first_ts <= Batch.last_ts and Batch.count >= 1
    - Only one batch is open at a time
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from ..errors import EntryUnparsableError
from ..queue.durable_queue import DurableQueue, QueueEntry
from ..queue.naming import object_prefix
from ..routes.registry import RouteConfig

logger = logging.getLogger(__name__)

MICROS_PER_MINUTE = 60_000_000

# Group keys never contain "\0", so no real entry can share this key.
_SENTINEL = QueueEntry(name="", group_key="\0completed", timestamp=-1, path=Path())


@dataclass
class Batch:
    """Queued events of one group key.

    Attributes:
        group_key: Shared group key
        first_ts: Timestamp of the first entry seen
        last_ts: Timestamp of the last entry seen
        entries: Entries in timestamp order
    """

    group_key: str
    first_ts: int
    last_ts: int
    entries: list[QueueEntry] = field(default_factory=list)

    @classmethod
    def open(cls, entry: QueueEntry) -> Batch:
        return cls(
            group_key=entry.group_key,
            first_ts=entry.timestamp,
            last_ts=entry.timestamp,
            entries=[entry],
        )

    def add(self, entry: QueueEntry) -> None:
        self.entries.append(entry)
        self.last_ts = entry.timestamp

    @property
    def count(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[Path]:
        return [e.path for e in self.entries]

    @property
    def object_prefix(self) -> str:
        return object_prefix(self.group_key)


@dataclass(frozen=True)
class FlushPolicy:
    """Dual latency/size threshold deciding when a batch is uploaded.

    A batch is due once its oldest entry is archive_every_mins old, or once
    it holds archive_count_exceeds entries, whichever comes first.
    """

    every_mins: int
    count_exceeds: int

    @classmethod
    def for_route(cls, config: RouteConfig) -> FlushPolicy:
        return cls(
            every_mins=config.archive_every_mins,
            count_exceeds=config.archive_count_exceeds,
        )

    def elapsed_minutes(self, batch: Batch, now_us: int) -> int:
        return (now_us - batch.first_ts) // MICROS_PER_MINUTE

    def is_due(self, batch: Batch, now_us: int) -> bool:
        return (
            self.elapsed_minutes(batch, now_us) >= self.every_mins
            or batch.count >= self.count_exceeds
        )


@dataclass
class ScanResult:
    """Parsed contents of one route's queue.

    Attributes:
        entries: Entries whose names parsed
        unparsable: Names that did not parse, left in place
    """

    entries: list[QueueEntry] = field(default_factory=list)
    unparsable: list[str] = field(default_factory=list)


def scan_route(queue: DurableQueue, archive_id: str) -> ScanResult:
    """List and parse a route's queue.

    Raises:
        QueueUnreadableError: If the queue directory cannot be listed
    """
    result = ScanResult()
    for name in queue.list_entries(archive_id):
        try:
            result.entries.append(queue.parse_entry(archive_id, name))
        except EntryUnparsableError as e:
            logger.warning(f"archive: {archive_id} skipping entry: {e.message}")
            result.unparsable.append(name)
    return result


def group_entries(entries: Iterable[QueueEntry]) -> Iterator[Batch]:
    """Partition entries into batches, one per group key, in key order."""
    ordered = sorted(entries, key=lambda e: (e.group_key, e.timestamp, e.name))
    open_batches: dict[str, Batch] = {}

    for entry in itertools.chain(ordered, [_SENTINEL]):
        batch = open_batches.get(entry.group_key)
        if batch is not None:
            batch.add(entry)
            continue

        # Key changed: the open batch is complete
        for key in list(open_batches):
            yield open_batches.pop(key)

        if entry is _SENTINEL:
            break
        open_batches[entry.group_key] = Batch.open(entry)
