"""
Unit tests for archive formats and the upload engine.

Tests cover:
- File format parsing and serialization
- Byte-exact ndjson output
- Object key derivation
- Exclusion of undecodable files
- Bucket creation, retries, deadlines
"""

import json

import pytest

from archival.archive_server.config import UploadConfig
from archival.archive_server.errors import DecodeError, UnsupportedFormatError, UploadError
from archival.archive_server.routes.registry import RouteConfig
from archival.archive_server.upload.engine import (
    UploadEngine,
    build_object_key,
    normalize_endpoint,
)
from archival.archive_server.upload.formats import FileFormat, decode_event


@pytest.fixture
def event_files(tmp_path):
    """Write event files and return their paths."""

    def _write(*payloads):
        paths = []
        for i, payload in enumerate(payloads):
            path = tmp_path / f"k {i + 1}"
            path.write_bytes(payload)
            paths.append(path)
        return paths

    return _write


class TestFileFormat:
    """Tests for FileFormat."""

    def test_parse_known_formats(self):
        assert FileFormat.parse("array") == FileFormat(kind="array")
        assert FileFormat.parse("ndjson") == FileFormat(kind="ndjson")
        assert FileFormat.parse("object:events") == FileFormat(kind="object", field="events")

    @pytest.mark.parametrize("value", ["csv", "", "object:", "ARRAY", "object"])
    def test_parse_rejects_others(self, value):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            FileFormat.parse(value)
        assert exc_info.value.message == f"invalid file format: {value}"

    def test_extensions(self):
        assert FileFormat.parse("array").extension == "json"
        assert FileFormat.parse("object:x").extension == "json"
        assert FileFormat.parse("ndjson").extension == "json"

    def test_array_encoding(self, event_files):
        events = [decode_event(p) for p in event_files(b'{"a": 1}', b'{"b": [2, 3]}')]

        body = FileFormat.parse("array").encode(events)

        assert json.loads(body) == [{"a": 1}, {"b": [2, 3]}]

    def test_object_encoding(self, event_files):
        events = [decode_event(p) for p in event_files(b'{"a": 1}', b'{"a": 2}')]

        body = FileFormat.parse("object:events").encode(events)

        assert json.loads(body) == {"events": [{"a": 1}, {"a": 2}]}

    @pytest.mark.parametrize("count", [1, 2, 5])
    def test_ndjson_is_byte_exact(self, event_files, count):
        payloads = [f'{{ "n" : {i},  "s": "é" }}'.encode("utf-8") for i in range(count)]
        events = [decode_event(p) for p in event_files(*payloads)]

        body = FileFormat.parse("ndjson").encode(events)

        assert body == b"\n".join(payloads)

    def test_decode_rejects_non_objects(self, event_files):
        (bad_json, array) = event_files(b"{oops", b"[1, 2]")

        with pytest.raises(DecodeError):
            decode_event(bad_json)
        with pytest.raises(DecodeError):
            decode_event(array)

    def test_decode_missing_file(self, tmp_path):
        with pytest.raises(DecodeError):
            decode_event(tmp_path / "gone 1")


class TestObjectKey:
    """Tests for key derivation helpers."""

    def test_build_object_key(self):
        key = build_object_key("app/2024-05/dev", 100, 250, 3, FileFormat.parse("array"))
        assert key == "app/2024-05/dev/100-250-3.json"

    def test_ndjson_key_keeps_json_extension(self):
        key = build_object_key("dev", 1, 1, 1, FileFormat.parse("ndjson"))
        assert key == "dev/1-1-1.json"

    def test_normalize_endpoint(self):
        assert normalize_endpoint(None) is None
        assert normalize_endpoint("") is None
        assert normalize_endpoint("s3.example.com") == "https://s3.example.com"
        assert normalize_endpoint("http://minio:9000") == "http://minio:9000"


class TestUploadEngine:
    """Tests for UploadEngine against the in-memory store."""

    @pytest.fixture
    def route(self):
        return RouteConfig(
            archive_id="r1",
            bucket_name="events",
            bucket_region="eu-west-1",
            bucket_endpoint="http://minio:9000",
            key_id="AKID",
            key_secret="secret",
            file_format="array",
        )

    @pytest.fixture
    def engine(self, store):
        return UploadEngine(
            UploadConfig(timeout_seconds=1, max_retries=2, retry_delay_ms=1),
            client_factory=store,
        )

    @pytest.mark.asyncio
    async def test_upload_success(self, engine, store, route, event_files):
        paths = event_files(b'{"a": 1}', b'{"a": 2}')

        result = await engine.upload(route, "dev/1-2-2.json", paths)

        assert result.included == paths
        assert result.excluded == []
        assert result.attempts == 1
        assert json.loads(store.objects("events")["dev/1-2-2.json"]) == [{"a": 1}, {"a": 2}]
        put = store.puts[0]
        assert put.content_type == "application/json"
        assert put.endpoint == "http://minio:9000"
        assert put.region == "eu-west-1"

    @pytest.mark.asyncio
    async def test_existing_bucket_is_fine(self, engine, store, route, event_files):
        paths = event_files(b'{"a": 1}')

        await engine.upload(route, "k/1.json", paths)
        await engine.upload(route, "k/2.json", paths)

        assert store.create_bucket_calls == 2
        assert sorted(store.objects("events")) == ["k/1.json", "k/2.json"]

    @pytest.mark.asyncio
    async def test_undecodable_file_excluded(self, engine, store, route, event_files):
        good1, bad, good2 = event_files(b'{"a": 1}', b"not json", b'{"a": 3}')

        result = await engine.upload(route, "k/1-3-3.json", [good1, bad, good2])

        assert result.included == [good1, good2]
        assert result.excluded == [bad]
        assert json.loads(store.objects("events")["k/1-3-3.json"]) == [{"a": 1}, {"a": 3}]
        assert bad.exists()

    @pytest.mark.asyncio
    async def test_nothing_decodable_skips_upload(self, engine, store, route, event_files):
        paths = event_files(b"nope", b"[]")

        assert await engine.upload(route, "k/x.json", paths) is None
        assert store.put_attempts == 0

    @pytest.mark.asyncio
    async def test_unsupported_format_fails_before_io(self, engine, store, route, tmp_path):
        route = RouteConfig(archive_id="r1", bucket_name="events", file_format="xml")

        with pytest.raises(UnsupportedFormatError):
            await engine.upload(route, "k/x.json", [tmp_path / "never-read 1"])
        assert store.create_bucket_calls == 0

    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, engine, store, route, event_files):
        store.fail_next("events", times=2)

        result = await engine.upload(route, "k/1.json", event_files(b'{"a": 1}'))

        assert result.attempts == 3
        assert "k/1.json" in store.objects("events")

    @pytest.mark.asyncio
    async def test_persistent_failure_raises(self, engine, store, route, event_files):
        store.fail_always("events", code="AccessDenied")

        with pytest.raises(UploadError) as exc_info:
            await engine.upload(route, "k/1.json", event_files(b'{"a": 1}'))

        assert exc_info.value.attempts == 3
        assert exc_info.value.key == "k/1.json"
        assert "AccessDenied" in exc_info.value.message
        assert store.objects("events") == {}

    @pytest.mark.asyncio
    async def test_hung_put_hits_deadline(self, store, route, event_files):
        engine = UploadEngine(
            UploadConfig(timeout_seconds=0.05, max_retries=0, retry_delay_ms=1),
            client_factory=store,
        )
        store.latency_seconds = 1.0

        with pytest.raises(UploadError) as exc_info:
            await engine.upload(route, "k/1.json", event_files(b'{"a": 1}'))

        assert "timed out" in exc_info.value.message
