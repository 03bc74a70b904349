"""
Archive object formats.

A route's file_format selects how the events of one batch are laid out in
the uploaded object:

    array           [event, event, ...]
    object:<field>  {"<field>": [event, event, ...]}
    ndjson          raw event bytes joined by "\\n", byte for byte

Every queued file must decode as a JSON object to be included, whatever
the format; ndjson just uploads the original bytes instead of re-encoding.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import DecodeError, UnsupportedFormatError

ARRAY = "array"
OBJECT = "object"
NDJSON = "ndjson"
OBJECT_PREFIX = "object:"


@dataclass(frozen=True)
class DecodedEvent:
    """One queued event ready for serialization.

    Attributes:
        path: Queue file the event came from
        raw: File contents as read
        event: Decoded JSON object
    """

    path: Path
    raw: bytes
    event: dict[str, Any]


def decode_event(path: Path) -> DecodedEvent:
    """Read and decode one queued event file.

    Raises:
        DecodeError: If the file cannot be read or is not a JSON object
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"error reading {path}: {e}", path=str(path)) from e

    try:
        event = json.loads(raw)
    except ValueError as e:
        raise DecodeError(f"error unmarshaling {path}: {e}", path=str(path)) from e
    if not isinstance(event, dict):
        raise DecodeError(f"error unmarshaling {path}: not a JSON object", path=str(path))

    return DecodedEvent(path=path, raw=raw, event=event)


@dataclass(frozen=True)
class FileFormat:
    """Parsed file_format setting.

    Attributes:
        kind: "array", "object" or "ndjson"
        field: Field name for the "object" kind
    """

    kind: str
    field: str | None = None

    @classmethod
    def parse(cls, value: str) -> FileFormat:
        """Parse a route's file_format.

        Raises:
            UnsupportedFormatError: For any other value
        """
        if value == ARRAY:
            return cls(kind=ARRAY)
        if value == NDJSON:
            return cls(kind=NDJSON)
        if value.startswith(OBJECT_PREFIX) and len(value) > len(OBJECT_PREFIX):
            return cls(kind=OBJECT, field=value[len(OBJECT_PREFIX):])
        raise UnsupportedFormatError(value)

    @property
    def extension(self) -> str:
        # ndjson objects keep the .json suffix; only the body layout differs
        return "json"

    @property
    def content_type(self) -> str:
        return "application/x-ndjson" if self.kind == NDJSON else "application/json"

    def encode(self, events: list[DecodedEvent]) -> bytes:
        """Serialize decoded events into one archive object body."""
        if self.kind == NDJSON:
            return b"\n".join(e.raw for e in events)

        items = [e.event for e in events]
        if self.kind == OBJECT:
            payload: Any = {self.field: items}
        else:
            payload = items
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
