"""
Ingestion helpers: the producer side of the route queues.

An HTTP listener (not part of this package) accepts an event together with
its route settings and hands both to Ingestor.ingest(), which:
1. Saves the route configuration (atomic, skipped when unchanged)
2. Derives the group key from the route's file_folder template
3. Appends the event to the route queue (atomic)
4. Wakes the batcher

Event bodies are JSON objects. The fields read here are:
    device    device UID, used by the [device] template token
    file      notefile id, used by the [file] token
    received  receive time in float seconds (defaults to now)

Invariants:
    - The original event bytes are queued unchanged
    - A route's error.txt is exposed read-only via health()
"""

from __future__ import annotations

import json
import logging
import time

from .errors import IngestError
from .batch.wake import WakeSignal
from .layout import DataLayout
from .queue.durable_queue import DurableQueue
from .queue.naming import ENTRY_SEPARATOR, expand_folder_template, received_to_micros
from .routes.marker import ErrorMarker
from .routes.registry import RouteConfig, RouteRegistry

logger = logging.getLogger(__name__)


class Ingestor:
    """Queues events for the batcher.

    Example:
        >>> ingestor = Ingestor(DataLayout("/var/lib/archive"), wake)
        >>> ingestor.ingest(route_config, b'{"device":"dev:1","received":1715000000.5}')
        '1 2024-05 1715000000500000'
    """

    def __init__(self, layout: DataLayout, wake: WakeSignal | None = None) -> None:
        self.layout = layout
        self.wake = wake
        self.registry = RouteRegistry(layout)
        self.queue = DurableQueue(layout)
        self.markers = ErrorMarker(layout)

    def ingest(self, config: RouteConfig, body: bytes) -> str:
        """Queue one event for a route.

        Args:
            config: Route settings sent with the event
            body: Raw JSON event

        Returns:
            Name of the queued entry

        Raises:
            IngestError: If the event or route settings are unusable
        """
        if not body or not body.strip():
            raise IngestError("event is blank", archive_id=config.archive_id)
        try:
            event = json.loads(body)
        except ValueError as e:
            raise IngestError(f"invalid event JSON: {e}", archive_id=config.archive_id) from e
        if not isinstance(event, dict):
            raise IngestError("event is not a JSON object", archive_id=config.archive_id)
        if ENTRY_SEPARATOR in config.file_folder:
            raise IngestError(
                "file_folder may not contain a space character", archive_id=config.archive_id
            )

        received = event.get("received")
        if isinstance(received, bool) or not isinstance(received, (int, float)) or received <= 0:
            received = time.time()

        group_key = expand_folder_template(
            config.file_folder,
            received=float(received),
            device_uid=str(event.get("device") or ""),
            notefile_id=str(event.get("file") or ""),
        )

        try:
            self.registry.save(config)
            name = self.queue.append(
                config.archive_id, group_key, received_to_micros(float(received)), body
            )
        except ValueError as e:
            raise IngestError(str(e), archive_id=config.archive_id) from e
        except OSError as e:
            logger.error(f"error queueing event for {config.archive_id}: {e}")
            raise IngestError(
                f"can't queue event: {e}", archive_id=config.archive_id
            ) from e

        if self.wake is not None:
            self.wake.notify()
        return name

    def health(self, archive_id: str) -> str | None:
        """Last archive failure for a route, or None when healthy."""
        return self.markers.read(archive_id)
