"""
Durable event queue for the archive server.

Events wait in <data_dir>/<archive_id>/incoming/ as one file each, named
"<group key> <timestamp micros>", until the batcher archives them.
"""

from .durable_queue import DurableQueue, QueueEntry
from .naming import (
    entry_name,
    expand_folder_template,
    object_prefix,
    received_to_micros,
    split_entry_name,
)

__all__ = [
    "DurableQueue",
    "QueueEntry",
    "entry_name",
    "expand_folder_template",
    "object_prefix",
    "received_to_micros",
    "split_entry_name",
]
