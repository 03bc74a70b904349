"""
Shared fixtures for archive server tests.
"""

import pytest

from archival.archive_server.layout import DataLayout
from archival.archive_server.queue.durable_queue import DurableQueue
from archival.archive_server.routes.registry import RouteConfig, RouteRegistry
from archival.archive_server.upload.memory import InMemoryObjectStore


@pytest.fixture
def layout(tmp_path):
    """Data directory layout rooted in a temporary directory."""
    return DataLayout(tmp_path / "data")


@pytest.fixture
def registry(layout):
    return RouteRegistry(layout)


@pytest.fixture
def queue(layout):
    return DurableQueue(layout)


@pytest.fixture
def store():
    """Fresh in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def make_route(registry):
    """Create a route.json and return its RouteConfig."""

    def _make(archive_id="route-a", **overrides):
        settings = {
            "archive_id": archive_id,
            "bucket_name": f"{archive_id}-bucket",
            "bucket_region": "us-east-1",
            "bucket_endpoint": "http://minio.local:9000",
            "key_id": "AKIDEXAMPLE",
            "key_secret": "secret",
            "archive_every_mins": 60,
            "archive_count_exceeds": 5,
            "file_format": "array",
        }
        settings.update(overrides)
        config = RouteConfig(**settings)
        registry.save(config)
        return config

    return _make
