"""
Shared capture state.

One CaptureContext is created at startup and handed explicitly to the
capture scheduler, the save handlers and the API. Its lock is the single
mutual-exclusion domain guarding the ring buffer, the write cursor and
the rolling-save countdown.
"""

import logging
import threading
from datetime import datetime
from typing import Callable

from sillcam.camera.ring_buffer import SnapshotRingBuffer

logger = logging.getLogger(__name__)


class CaptureContext:
    """
    Ring buffer plus the cursor and rolling-save state that index it.

    Attributes:
        lock: Guards every field below
        ring: The frame history
        write_cursor: Next slot to be overwritten by capture
        save_timer: Remaining per-tick persists (0 = idle)
        window_start: When the active rolling window opened
        clock: Wall-clock source used to stamp frames and windows
    """

    def __init__(
        self,
        history_size: int,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.lock = threading.Lock()
        self.ring = SnapshotRingBuffer(history_size)
        self.write_cursor = 0
        self.save_timer = 0
        self.window_start: datetime | None = None
        self.clock = clock

    @property
    def history_size(self) -> int:
        return self.ring.size()

    @property
    def most_recent_index(self) -> int:
        """Slot of the most recently completed frame (caller holds lock)."""
        return (self.write_cursor - 1) % self.history_size

    def advance_cursor(self) -> None:
        """Move the write cursor to the next slot (caller holds lock)."""
        self.write_cursor = (self.write_cursor + 1) % self.history_size

    def get_status(self) -> dict:
        """Get a consistent view of the shared state."""
        with self.lock:
            return {
                **self.ring.get_status(),
                "history_size": self.history_size,
                "write_cursor": self.write_cursor,
                "save_timer": self.save_timer,
                "rolling_active": self.save_timer > 0,
                "window_start": self.window_start.isoformat() if self.window_start else None,
            }
