"""
Upload engine: one archive batch -> one object in an S3-compatible store.

Each route brings its own endpoint, region, bucket and static credentials,
so a client is created per upload from the route's RouteConfig. Buckets are
addressed path-style so that MinIO and other non-AWS endpoints work.

Object key:
    <group key with "/" restored>/<first_ts>-<last_ts>-<count>.json

Invariants:
    - Unsupported formats fail before any file is read or any call is made
    - A file that can't be decoded is excluded from the object but never deleted
    - Every store call has a hard deadline; puts are retried with backoff
    - The same batch always maps to the same key, so a retry overwrites

How to change safely:
    - Keep key derivation deterministic
    - Never report success before put_object has returned
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncContextManager, Callable

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import UploadConfig
from ..errors import DecodeError, UploadError
from ..routes.registry import RouteConfig
from .formats import DecodedEvent, FileFormat, decode_event

logger = logging.getLogger(__name__)

# Returns an async context manager yielding an S3 client for a route
ClientFactory = Callable[[RouteConfig], AsyncContextManager[Any]]

BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})


def build_object_key(
    object_prefix: str,
    first_ts: int,
    last_ts: int,
    count: int,
    file_format: FileFormat,
) -> str:
    """Derive the object key of a batch."""
    return f"{object_prefix}/{first_ts}-{last_ts}-{count}.{file_format.extension}"


def normalize_endpoint(endpoint: str | None) -> str | None:
    """Add a scheme to bare host endpoints such as "s3.example.com"."""
    if not endpoint:
        return None
    if "://" not in endpoint:
        return f"https://{endpoint}"
    return endpoint


class S3ClientFactory:
    """Creates aiobotocore S3 clients from route configurations."""

    def __init__(self, upload_config: UploadConfig) -> None:
        self.upload_config = upload_config
        self._session = get_session()

    def __call__(self, route: RouteConfig) -> AsyncContextManager[Any]:
        client_kwargs: dict[str, Any] = {
            "region_name": route.bucket_region,
            "config": AioConfig(
                s3={"addressing_style": "path"},
                connect_timeout=self.upload_config.connect_timeout_seconds,
                read_timeout=self.upload_config.timeout_seconds,
                retries={"max_attempts": 1},
            ),
        }

        endpoint_url = normalize_endpoint(route.bucket_endpoint)
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        if route.key_id:
            client_kwargs["aws_access_key_id"] = route.key_id
            client_kwargs["aws_secret_access_key"] = route.key_secret

        return self._session.create_client("s3", **client_kwargs)


@dataclass
class UploadResult:
    """Outcome of a successful upload.

    Attributes:
        bucket: Target bucket
        key: Object key written
        included: Files whose events are in the object (safe to delete)
        excluded: Files skipped for read/decode errors (must be kept)
        size_bytes: Uploaded object size
        attempts: put_object attempts used
    """

    bucket: str
    key: str
    included: list[Path] = field(default_factory=list)
    excluded: list[Path] = field(default_factory=list)
    size_bytes: int = 0
    attempts: int = 0


class UploadEngine:
    """Serializes batches and writes them to the route's bucket.

    Attributes:
        upload_config: Deadlines and retry policy
        client_factory: Source of S3 clients (aiobotocore unless overridden)

    Example:
        >>> engine = UploadEngine(UploadConfig())
        >>> result = await engine.upload(route_config, key, paths)
        >>> result.included
        [PosixPath('.../incoming/dev-1 2024-05 1715000000000000')]
    """

    def __init__(
        self,
        upload_config: UploadConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.upload_config = upload_config or UploadConfig()
        self.client_factory = client_factory or S3ClientFactory(self.upload_config)

    def decode_files(self, paths: list[Path]) -> tuple[list[DecodedEvent], list[Path]]:
        """Decode the files of a batch, separating the undecodable ones."""
        decoded: list[DecodedEvent] = []
        excluded: list[Path] = []
        for path in paths:
            try:
                decoded.append(decode_event(path))
            except DecodeError as e:
                logger.warning(e.message)
                excluded.append(path)
        return decoded, excluded

    async def upload(
        self,
        config: RouteConfig,
        key: str,
        paths: list[Path],
    ) -> UploadResult | None:
        """Upload one batch.

        Args:
            config: Route configuration (bucket, credentials, format)
            key: Object key for the batch
            paths: Queue files of the batch, in order

        Returns:
            UploadResult, or None when no file decoded and nothing was uploaded

        Raises:
            UnsupportedFormatError: If the route's file_format is unknown
            UploadError: If the store could not be reached or refused the object
        """
        file_format = FileFormat.parse(config.file_format)

        decoded, excluded = self.decode_files(paths)
        if not decoded:
            logger.warning(
                f"archive: {config.archive_id} nothing decodable for {key}, skipping upload",
                extra={"archive_id": config.archive_id, "excluded": len(excluded)},
            )
            return None

        body = file_format.encode(decoded)

        try:
            async with self.client_factory(config) as client:
                await self._ensure_bucket(client, config)
                attempts = await self._put_with_retries(
                    client, config, key, body, file_format.content_type
                )
        except UploadError:
            raise
        except (BotoCoreError, ClientError, ValueError, OSError, asyncio.TimeoutError) as e:
            raise UploadError(
                f"error creating session: {e}", bucket=config.bucket_name, key=key
            ) from e

        return UploadResult(
            bucket=config.bucket_name,
            key=key,
            included=[d.path for d in decoded],
            excluded=excluded,
            size_bytes=len(body),
            attempts=attempts,
        )

    async def _ensure_bucket(self, client: Any, config: RouteConfig) -> None:
        """Create the bucket if needed; an existing bucket is fine."""
        params: dict[str, Any] = {"Bucket": config.bucket_name}
        if config.bucket_region and config.bucket_region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": config.bucket_region}

        try:
            await asyncio.wait_for(
                client.create_bucket(**params), self.upload_config.timeout_seconds
            )
            logger.info(
                f"archive: {config.archive_id} created bucket {config.bucket_name}",
                extra={"archive_id": config.archive_id, "bucket": config.bucket_name},
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code not in BUCKET_EXISTS_CODES:
                # Often AccessDenied on a bucket we may still write to; let the put decide
                logger.warning(
                    f"archive: {config.archive_id} create bucket {config.bucket_name}: {e}"
                )
        except (BotoCoreError, OSError, asyncio.TimeoutError) as e:
            logger.warning(
                f"archive: {config.archive_id} create bucket {config.bucket_name}: {e!r}"
            )

    async def _put_with_retries(
        self,
        client: Any,
        config: RouteConfig,
        key: str,
        body: bytes,
        content_type: str,
    ) -> int:
        """Put the object, retrying with exponential backoff.

        Returns:
            Number of attempts used
        """
        max_attempts = self.upload_config.max_retries + 1
        delay = self.upload_config.retry_delay_ms / 1000.0

        for attempt in range(1, max_attempts + 1):
            try:
                await asyncio.wait_for(
                    client.put_object(
                        Bucket=config.bucket_name,
                        Key=key,
                        Body=body,
                        ContentType=content_type,
                    ),
                    self.upload_config.timeout_seconds,
                )
                return attempt
            except (BotoCoreError, ClientError, OSError, asyncio.TimeoutError) as e:
                reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
                if attempt >= max_attempts:
                    raise UploadError(
                        f"err uploading object: {reason}",
                        bucket=config.bucket_name,
                        key=key,
                        attempts=attempt,
                    ) from e
                logger.warning(
                    f"archive: {config.archive_id} upload attempt {attempt} failed: {reason}",
                    extra={"archive_id": config.archive_id, "key": key, "attempt": attempt},
                )
                await asyncio.sleep(delay)
                delay *= 2

        raise UploadError("no upload attempts configured", bucket=config.bucket_name, key=key)
