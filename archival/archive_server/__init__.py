"""
Archive Server - durable per-route event batching to S3-compatible storage.

This package implements the archival side of an event relay:
- Ingestion writes each event as one small file in a per-route queue directory
- The batcher groups queued files by key and flushes due groups to object storage
- Upload success deletes the source files, failure leaves them for the next pass

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  Ingestion  │────▶│ route.json  │     │   WakeSignal    │
    │ (listener)  │────▶│ incoming/*  │     │  (coalescing)   │
    └──────┬──────┘     └──────┬──────┘     └────────┬────────┘
           │                   │                     │
           └───────notify──────┼────────────────────▶│
                               ▼                     ▼
                        ┌─────────────────────────────────┐
                        │   ArchiveBatcher (one pass per  │
                        │   wake: scan → group → flush)   │
                        └───────────────┬─────────────────┘
                                        │
                        ┌───────────────┼───────────────┐
                        ▼                               ▼
                   ┌─────────┐                     ┌─────────┐
                   │   S3    │                     │error.txt│
                   │(objects)│                     │ (health)│
                   └─────────┘                     └─────────┘

Invariants:
    - The queue directory is the source of truth; no batch state survives a pass
    - A queued file is deleted only after the upload that included it succeeded
    - The error marker is cleared only by a successful upload

How to change safely:
    - Keep queue filenames as "<group key> <timestamp micros>"
    - Never delete files before the store has acknowledged the object
    - Object keys must stay deterministic so retries overwrite, not duplicate

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
