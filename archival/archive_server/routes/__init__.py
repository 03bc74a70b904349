"""
Route state for the archive server.

A route is one archive destination keyed by archive_id. It owns:
- route.json: its RouteConfig (RouteRegistry)
- error.txt: its sticky upload failure marker (ErrorMarker)

Invariants:
    - Configuration is re-read on every pass, never cached
    - The error marker is cleared only after a successful upload
"""

from .marker import ErrorMarker
from .registry import RouteConfig, RouteRegistry

__all__ = ["ErrorMarker", "RouteConfig", "RouteRegistry"]
