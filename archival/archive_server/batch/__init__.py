"""
Batch module for the archive server.

This module turns per-route queue directories into uploaded archive objects:
- Grouper: scan, parse and partition entries into one batch per group key
- FlushPolicy: due after archive_every_mins or archive_count_exceeds
- WakeSignal: coalescing wake-up with an hourly fallback
- ArchiveBatcher: the pass loop tying them to the UploadEngine

Invariants:
    - Files are deleted only after the upload including them succeeded
    - Batches are rebuilt from the directory on every pass
"""

from .batcher import ArchiveBatcher, RouteReport
from .grouper import Batch, FlushPolicy, ScanResult, group_entries, scan_route
from .wake import WakeSignal

__all__ = [
    "ArchiveBatcher",
    "Batch",
    "FlushPolicy",
    "RouteReport",
    "ScanResult",
    "WakeSignal",
    "group_entries",
    "scan_route",
]
