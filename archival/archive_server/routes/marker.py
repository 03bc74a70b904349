"""
Per-route sticky error marker.

error.txt is present while the most recent upload for the route failed and
holds that failure's message. Ingestion reads it to report route health back
to event producers. It is cleared only by a successful upload.
"""

from __future__ import annotations

import logging

from ..layout import DataLayout, atomic_write

logger = logging.getLogger(__name__)


class ErrorMarker:
    """Reads, writes and clears error.txt for routes under a data directory."""

    def __init__(self, layout: DataLayout) -> None:
        self.layout = layout

    def read(self, archive_id: str) -> str | None:
        """Last failure message, or None when the route is healthy."""
        try:
            return self.layout.error_path(archive_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, archive_id: str, message: str) -> None:
        """Record a failure, replacing any previous marker."""
        try:
            atomic_write(self.layout.error_path(archive_id), message.encode("utf-8"))
        except OSError as e:
            logger.error(f"can't write error marker for {archive_id}: {e}")

    def clear(self, archive_id: str) -> None:
        """Mark the route healthy again."""
        self.layout.error_path(archive_id).unlink(missing_ok=True)
