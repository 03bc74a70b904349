"""
Unit tests for the ingestion helpers.
"""

import json
from datetime import datetime, timezone

import pytest

from archival.archive_server.batch.wake import WakeSignal
from archival.archive_server.errors import IngestError
from archival.archive_server.ingest import Ingestor
from archival.archive_server.routes.registry import RouteConfig

RECEIVED = datetime(2024, 5, 6, 7, 8, 9, 250000, tzinfo=timezone.utc).timestamp()


class TestIngestor:
    """Tests for Ingestor."""

    @pytest.fixture
    def wake(self):
        return WakeSignal()

    @pytest.fixture
    def ingestor(self, layout, wake):
        return Ingestor(layout, wake)

    @pytest.fixture
    def route(self):
        return RouteConfig(
            archive_id="r1",
            bucket_name="events",
            file_folder="[device]/[year]-[month]",
        )

    def body(self, **fields):
        event = {"device": "dev:864475", "file": "data.qo", "received": RECEIVED, "body": {"t": 21}}
        event.update(fields)
        return json.dumps(event).encode()

    def test_ingest_queues_event(self, ingestor, route, queue, registry):
        body = self.body()

        name = ingestor.ingest(route, body)

        assert name == f"864475 2024-05 {int(RECEIVED)}250000"
        assert queue.list_entries("r1") == [name]
        assert (queue.layout.incoming_dir("r1") / name).read_bytes() == body
        assert registry.load("r1") == route

    def test_ingest_wakes_batcher(self, ingestor, route, wake):
        ingestor.ingest(route, self.body())
        ingestor.ingest(route, self.body(received=RECEIVED + 1))

        assert wake.pending

    def test_missing_received_uses_now(self, ingestor, route, queue):
        name = ingestor.ingest(route, json.dumps({"device": "d"}).encode())

        assert name.startswith("d ")
        assert int(name.rsplit(" ", 1)[1]) > 0

    @pytest.mark.parametrize("body", [b"", b"   ", b"{bad", b"[1]", b'"str"'])
    def test_rejects_bad_bodies(self, ingestor, route, body):
        with pytest.raises(IngestError):
            ingestor.ingest(route, body)

    def test_rejects_space_in_folder(self, ingestor):
        route = RouteConfig(archive_id="r1", bucket_name="b", file_folder="a b")

        with pytest.raises(IngestError) as exc_info:
            ingestor.ingest(route, self.body())
        assert "space" in exc_info.value.message

    def test_rejects_empty_group_key(self, ingestor):
        route = RouteConfig(archive_id="r1", bucket_name="b", file_folder="[device]")

        with pytest.raises(IngestError):
            ingestor.ingest(route, self.body(device=""))

    def test_health_reflects_error_marker(self, ingestor, layout):
        assert ingestor.health("r1") is None

        ingestor.markers.write("r1", "err uploading object: boom")

        assert ingestor.health("r1") == "err uploading object: boom"
