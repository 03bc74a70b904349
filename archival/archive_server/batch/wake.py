"""
Coalescing wake-up signal for the batcher.

Ingestion calls notify() after every queued event; the batcher waits on the
signal between passes. Any number of notifies before a wait collapse into
one wake-up, and a wait always ends after the timeout so a lost notify
delays archiving by at most one timeout.
"""

from __future__ import annotations

import asyncio

DEFAULT_WAKE_TIMEOUT_SECONDS = 3600.0


class WakeSignal:
    """Single-slot wake-up notification.

    Example:
        >>> wake = WakeSignal()
        >>> wake.notify()
        >>> wake.notify()
        >>> await wake.wait(5)   # returns True immediately
        True
        >>> await wake.wait(0.1)  # nothing pending, times out
        False
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def pending(self) -> bool:
        return self._event.is_set()

    def notify(self) -> None:
        """Request a pass; a no-op if one is already pending."""
        self._event.set()

    def notify_threadsafe(self, loop: asyncio.AbstractEventLoop) -> None:
        """Request a pass from a thread other than the batcher's loop."""
        loop.call_soon_threadsafe(self._event.set)

    async def wait(self, timeout: float = DEFAULT_WAKE_TIMEOUT_SECONDS) -> bool:
        """Wait for a notify or the timeout, consuming the pending wake.

        Returns:
            True if woken by notify(), False on timeout
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            # A notify that lands while the timeout fires stays pending
            return False
        self._event.clear()
        return True
