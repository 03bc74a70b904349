"""
In-memory object store for testing.

This module provides a stand-in for the S3 client subset the UploadEngine
uses (create_bucket, put_object) for:
- Unit tests
- Integration tests of the batcher
- Local development without an S3 endpoint

Failures can be injected per bucket to exercise retry and error-marker paths.

Invariants:
    - All data is lost on process exit
    - Errors are raised as botocore ClientError, like the real client

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep the client methods signature-compatible with aiobotocore
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from botocore.exceptions import ClientError

from ..routes.registry import RouteConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutRecord:
    """One accepted put_object call."""

    bucket: str
    key: str
    body: bytes
    content_type: Optional[str]
    endpoint: Optional[str]
    region: str


def _client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class InMemoryS3Client:
    """S3 client bound to one route's endpoint and region."""

    def __init__(self, store: InMemoryObjectStore, route: RouteConfig) -> None:
        self._store = store
        self._route = route

    async def create_bucket(self, Bucket: str, **kwargs: Any) -> Dict[str, Any]:
        self._store.create_bucket_calls += 1
        if Bucket in self._store.buckets:
            raise _client_error("BucketAlreadyOwnedByYou", "CreateBucket")
        self._store.buckets[Bucket] = {}
        return {"Location": f"/{Bucket}"}

    async def put_object(
        self,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        self._store.put_attempts += 1
        if self._store.latency_seconds:
            await asyncio.sleep(self._store.latency_seconds)

        code = self._store._take_failure(Bucket)
        if code is not None:
            raise _client_error(code, "PutObject", f"injected failure for {Bucket}")
        if Bucket not in self._store.buckets:
            raise _client_error("NoSuchBucket", "PutObject")

        self._store.buckets[Bucket][Key] = bytes(Body)
        self._store.puts.append(
            PutRecord(
                bucket=Bucket,
                key=Key,
                body=bytes(Body),
                content_type=ContentType,
                endpoint=self._route.bucket_endpoint,
                region=self._route.bucket_region,
            )
        )
        return {"ETag": f'"{len(self._store.puts)}"'}


class InMemoryObjectStore:
    """Object store usable as an UploadEngine client factory.

    Example:
        >>> store = InMemoryObjectStore()
        >>> engine = UploadEngine(UploadConfig(), client_factory=store)
        >>> store.fail_always("events")
        >>> store.heal("events")
        >>> store.objects("events")
        {}
    """

    def __init__(self) -> None:
        self.buckets: Dict[str, Dict[str, bytes]] = {}
        self.puts: List[PutRecord] = []
        self.put_attempts = 0
        self.create_bucket_calls = 0
        self.latency_seconds = 0.0
        self._fail_next: Dict[str, List[str]] = defaultdict(list)
        self._fail_always: Dict[str, str] = {}

    @contextlib.asynccontextmanager
    async def _client(self, route: RouteConfig) -> AsyncIterator[InMemoryS3Client]:
        yield InMemoryS3Client(self, route)

    def __call__(self, route: RouteConfig) -> contextlib.AbstractAsyncContextManager:
        return self._client(route)

    # =========================================================================
    # Testing helpers
    # =========================================================================

    def fail_next(self, bucket: str, times: int = 1, code: str = "InternalError") -> None:
        """Make the next `times` puts to bucket fail."""
        self._fail_next[bucket].extend([code] * times)

    def fail_always(self, bucket: str, code: str = "AccessDenied") -> None:
        """Make every put to bucket fail until heal()."""
        self._fail_always[bucket] = code

    def heal(self, bucket: str) -> None:
        """Clear all injected failures for bucket."""
        self._fail_always.pop(bucket, None)
        self._fail_next.pop(bucket, None)

    def objects(self, bucket: str) -> Dict[str, bytes]:
        """Objects stored in bucket."""
        return dict(self.buckets.get(bucket, {}))

    def _take_failure(self, bucket: str) -> Optional[str]:
        if bucket in self._fail_always:
            return self._fail_always[bucket]
        pending = self._fail_next.get(bucket)
        if pending:
            return pending.pop(0)
        return None
