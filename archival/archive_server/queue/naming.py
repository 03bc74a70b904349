"""
Queue entry naming.

A queued event is a file named "<group key> <timestamp micros>". The group
key comes from the route's file_folder template, with path separators
replaced by spaces so the whole key fits in one filename; the last space
separates key from timestamp. At upload time spaces become "/" again.

Template tokens:
    [device]   device UID without "dev:" prefix, ":" replaced by "-"
    [file]     notefile id
    [year] [month] [day] [hour] [minute] [second]   UTC receive time
    [weeknum]  week of year, (day_of_year - 1) // 7 + 1, two digits
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from ..errors import EntryUnparsableError

ENTRY_SEPARATOR = " "


def received_to_micros(received: float) -> int:
    """Convert a receive time in float seconds to integer microseconds."""
    seconds = int(received)
    micros = int(round((received - seconds) * 1_000_000))
    return seconds * 1_000_000 + micros


def now_micros() -> int:
    return time.time_ns() // 1000


def expand_folder_template(
    template: str,
    received: float,
    device_uid: str = "",
    notefile_id: str = "",
) -> str:
    """Expand a file_folder template into a queue group key.

    Args:
        template: Folder template, e.g. "[device]/[year]-[month]"
        received: Event receive time in seconds since the epoch
        device_uid: Device identifier ("dev:..." form accepted)
        notefile_id: Notefile the event belongs to

    Returns:
        Group key with "/" and "\\" replaced by spaces
    """
    when = datetime.fromtimestamp(received, tz=timezone.utc)
    device = device_uid.removeprefix("dev:").replace(":", "-")

    key = template.replace("/", ENTRY_SEPARATOR).replace("\\", ENTRY_SEPARATOR)
    replacements = {
        "[device]": device,
        "[file]": notefile_id,
        "[year]": f"{when.year:04d}",
        "[month]": f"{when.month:02d}",
        "[day]": f"{when.day:02d}",
        "[hour]": f"{when.hour:02d}",
        "[minute]": f"{when.minute:02d}",
        "[second]": f"{when.second:02d}",
        "[weeknum]": f"{(when.timetuple().tm_yday - 1) // 7 + 1:02d}",
    }
    for token, value in replacements.items():
        key = key.replace(token, value)
    return key


def entry_name(group_key: str, timestamp: int) -> str:
    """Filename for a queued event."""
    return f"{group_key}{ENTRY_SEPARATOR}{timestamp}"


def split_entry_name(name: str) -> tuple[str, int]:
    """Split a queue filename into (group key, timestamp micros).

    Raises:
        EntryUnparsableError: If there is no separator, the timestamp is not
            an integer, or it is not positive
    """
    key, sep, ts = name.rpartition(ENTRY_SEPARATOR)
    if not sep or not key:
        raise EntryUnparsableError(f"no group key in queue entry {name!r}", name=name)
    if not (ts.isascii() and ts.isdigit()):
        raise EntryUnparsableError(f"bad timestamp in queue entry {name!r}", name=name)
    timestamp = int(ts)
    if timestamp == 0:
        raise EntryUnparsableError(f"zero timestamp in queue entry {name!r}", name=name)
    return key, timestamp


def object_prefix(group_key: str) -> str:
    """Restore the path separators embedded in a group key."""
    return group_key.replace(ENTRY_SEPARATOR, "/")
