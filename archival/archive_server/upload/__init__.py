"""
Upload module for the archive server.

This module writes archive batches to S3-compatible object storage:
- FileFormat: array / object:<field> / ndjson serialization
- UploadEngine: per-route client, bucket creation, deadline and retries
- InMemoryObjectStore: test double for the S3 client

Invariants:
    - Uploads are idempotent: the same batch always maps to the same key
    - Undecodable files are excluded from the object, never dropped from disk
"""

from .engine import S3ClientFactory, UploadEngine, UploadResult, build_object_key
from .formats import FileFormat, decode_event
from .memory import InMemoryObjectStore

__all__ = [
    "FileFormat",
    "InMemoryObjectStore",
    "S3ClientFactory",
    "UploadEngine",
    "UploadResult",
    "build_object_key",
    "decode_event",
]
