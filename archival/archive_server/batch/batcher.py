"""
Archive batcher for the archive server.

The batcher is the consumer side of every route's queue. It runs as a
background loop that:
1. Runs a pass over every route (sequentially, one route at a time)
2. For each route: reloads route.json, scans incoming/, groups by key
3. Uploads each due group and deletes its files only on success
4. Waits on the WakeSignal (or its timeout) and repeats

Per group outcome:
    not due            files untouched, reconsidered next pass
    upload succeeded   included files deleted, error.txt cleared
    upload failed      all files kept, error.txt (re)written

Invariants:
    - No batch state survives a pass; everything is rebuilt from the directory
    - A failure in one route or group never stops the rest of the pass
    - RouteConfig flows as an argument, never as shared state

How to change safely:
    - Keep deletion strictly after a successful UploadResult
    - Keep routes sequential unless upload memory use is bounded first
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ..config import BatcherConfig
from ..errors import (
    ConfigMissingError,
    ConfigParseError,
    QueueUnreadableError,
    UnsupportedFormatError,
    UploadError,
)
from ..layout import DataLayout
from ..queue.durable_queue import DurableQueue
from ..queue.naming import now_micros
from ..routes.marker import ErrorMarker
from ..routes.registry import RouteConfig, RouteRegistry
from ..upload.engine import UploadEngine, build_object_key
from ..upload.formats import FileFormat
from .grouper import Batch, FlushPolicy, group_entries, scan_route
from .wake import WakeSignal

logger = logging.getLogger(__name__)


@dataclass
class RouteReport:
    """What one pass did for one route.

    Attributes:
        archive_id: Route identifier
        batches: Groups found in the queue
        flushed: Groups uploaded successfully
        failed: Groups whose upload failed
        deleted: Queue files deleted after successful uploads
        unparsable: Queue names skipped because they did not parse
        skipped: Reason the route was skipped entirely, if it was
    """

    archive_id: str
    batches: int = 0
    flushed: int = 0
    failed: int = 0
    deleted: int = 0
    unparsable: int = 0
    skipped: str | None = None


class ArchiveBatcher:
    """Flushes queued events of every route to object storage.

    Attributes:
        layout: Data directory layout
        wake: Signal raised by ingestion when events are queued
        upload_engine: Serializer and uploader for due batches
        config: Loop settings (wake timeout, scan chunking, quarantine)

    Example:
        >>> batcher = ArchiveBatcher(DataLayout("/var/lib/archive"), wake)
        >>> await batcher.start()  # Runs until stopped
    """

    def __init__(
        self,
        layout: DataLayout,
        wake: WakeSignal | None = None,
        upload_engine: UploadEngine | None = None,
        config: BatcherConfig | None = None,
        clock: Callable[[], int] = now_micros,
    ) -> None:
        """Initialize the batcher.

        Args:
            layout: Data directory layout
            wake: Wake signal shared with ingestion (created if not given)
            upload_engine: Upload engine (aiobotocore-backed if not given)
            config: Batcher settings
            clock: Current time in microseconds
        """
        self.layout = layout
        self.wake = wake or WakeSignal()
        self.upload_engine = upload_engine or UploadEngine()
        self.config = config or BatcherConfig()
        self.clock = clock

        self.registry = RouteRegistry(layout)
        self.queue = DurableQueue(layout, chunk_size=self.config.scan_chunk_size)
        self.markers = ErrorMarker(layout)

        self._running = False
        self._failure_counts: dict[Path, int] = {}
        self._pass_count = 0
        self._upload_count = 0
        self._upload_failures = 0
        self._archived_count = 0
        self._quarantined_count = 0

    async def start(self) -> None:
        """Start the batcher loop."""
        if self._running:
            logger.warning("Batcher already running")
            return

        self._running = True
        logger.info(
            "Starting archive batcher",
            extra={
                "data_dir": str(self.layout.data_dir),
                "wake_timeout_seconds": self.config.wake_timeout_seconds,
            },
        )

        try:
            while self._running:
                await self.run_pass()
                if not self._running:
                    break
                await self.wake.wait(self.config.wake_timeout_seconds)

        except asyncio.CancelledError:
            logger.info("Batcher cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the batcher loop after the current pass."""
        self._running = False
        self.wake.notify()
        logger.info("Stopping archive batcher")

    async def run_pass(self) -> list[RouteReport]:
        """Run one pass over every route."""
        self._pass_count += 1
        reports = []
        for archive_id in self.registry.list_routes():
            try:
                reports.append(await self.archive_route(archive_id))
            except Exception as e:
                logger.error(f"archive: {archive_id} pass failed: {e}", exc_info=True)
                reports.append(RouteReport(archive_id=archive_id, skipped=str(e)))

        self._prune_failure_counts()
        return reports

    async def archive_route(self, archive_id: str) -> RouteReport:
        """Scan, group and flush one route."""
        report = RouteReport(archive_id=archive_id)

        try:
            scan = scan_route(self.queue, archive_id)
        except QueueUnreadableError as e:
            logger.info(e.message)
            report.skipped = e.code
            return report

        report.unparsable = len(scan.unparsable)
        for name in scan.unparsable:
            self._note_failure(archive_id, self.layout.incoming_dir(archive_id) / name)

        if not scan.entries:
            return report

        # Fresh on every pass so ingestion's updates apply promptly
        try:
            config = self.registry.load(archive_id)
        except (ConfigMissingError, ConfigParseError) as e:
            logger.error(e.message, extra={"archive_id": archive_id})
            report.skipped = e.code
            return report

        policy = FlushPolicy.for_route(config)
        now_us = self.clock()

        for batch in group_entries(scan.entries):
            report.batches += 1
            if not policy.is_due(batch, now_us):
                logger.debug(
                    f"archive: {archive_id} folder '{batch.group_key}' is "
                    f"{policy.elapsed_minutes(batch, now_us)} mins old and has {batch.count} "
                    f"events (will archive at {policy.every_mins} mins or "
                    f"{policy.count_exceeds} events)"
                )
                continue
            await self._flush_batch(archive_id, config, batch, report)

        return report

    async def _flush_batch(
        self,
        archive_id: str,
        config: RouteConfig,
        batch: Batch,
        report: RouteReport,
    ) -> None:
        """Upload one due batch and reconcile the queue with the outcome."""
        try:
            file_format = FileFormat.parse(config.file_format)
            key = build_object_key(
                batch.object_prefix, batch.first_ts, batch.last_ts, batch.count, file_format
            )
            result = await self.upload_engine.upload(config, key, batch.paths)
        except (UnsupportedFormatError, UploadError) as e:
            logger.error(
                f"error uploading to {archive_id}: {e.message}",
                extra={"archive_id": archive_id, "group_key": batch.group_key},
            )
            self.markers.write(archive_id, e.message)
            self._upload_failures += 1
            report.failed += 1
            return

        if result is None:
            for path in batch.paths:
                self._note_failure(archive_id, path)
            return

        self.markers.clear(archive_id)
        deleted = self.queue.remove(result.included)
        for path in result.included:
            self._failure_counts.pop(path, None)
        for path in result.excluded:
            self._note_failure(archive_id, path)

        self._upload_count += 1
        self._archived_count += len(result.included)
        report.flushed += 1
        report.deleted += deleted

        logger.info(
            f"archive: {archive_id} folder '{batch.group_key}' ({len(result.included)} events) archived",
            extra={
                "archive_id": archive_id,
                "key": result.key,
                "events": len(result.included),
                "excluded": len(result.excluded),
                "size_bytes": result.size_bytes,
            },
        )

    def _note_failure(self, archive_id: str, path: Path) -> None:
        """Count a pass in which path could not be archived; quarantine if over limit."""
        limit = self.config.quarantine_after_failures
        if limit <= 0:
            return

        count = self._failure_counts.get(path, 0) + 1
        if count < limit:
            self._failure_counts[path] = count
            return

        self._failure_counts.pop(path, None)
        target = self.queue.quarantine(archive_id, path)
        if target is not None:
            self._quarantined_count += 1
            logger.error(
                f"archive: {archive_id} quarantined {path.name} after {count} failed passes",
                extra={"archive_id": archive_id, "path": str(target)},
            )

    def _prune_failure_counts(self) -> None:
        for path in [p for p in self._failure_counts if not p.exists()]:
            del self._failure_counts[path]

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        """Get batcher statistics."""
        return {
            "running": self._running,
            "passes": self._pass_count,
            "uploads": self._upload_count,
            "upload_failures": self._upload_failures,
            "archived_count": self._archived_count,
            "quarantined_count": self._quarantined_count,
            "tracked_failures": len(self._failure_counts),
        }
