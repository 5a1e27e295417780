"""
Snapshot Ring Buffer

Fixed-capacity circular store of the most recent camera frames. Slots
that have never been written hold ``None`` (an absent slot), which is
distinct from a frame whose bytes turn out to be empty or invalid.

The buffer has no lock of its own: every access goes through the
``CaptureContext`` lock held by the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """A single captured frame (encoded image bytes + capture time)."""

    data: bytes
    timestamp: datetime
    frame_number: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


class SnapshotRingBuffer:
    """
    Circular array of Frame slots.

    Indices are always reduced modulo the capacity, so no bounds failure
    is possible for any integer index.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._slots: list[Frame | None] = [None] * capacity
        logger.info(f"SnapshotRingBuffer initialized: {capacity} slots")

    def put(self, index: int, frame: Frame | None) -> None:
        """Store a frame (or an absent marker) at a slot."""
        self._slots[index % len(self._slots)] = frame

    def get(self, index: int) -> Frame | None:
        """Return the frame at a slot, or None if the slot is absent."""
        return self._slots[index % len(self._slots)]

    def size(self) -> int:
        """Capacity of the buffer."""
        return len(self._slots)

    def snapshot(self, start: int = 0) -> list[Frame | None]:
        """
        Copy the slots into a new list, beginning at ``start``.

        Passing the write cursor as ``start`` yields the history oldest
        first. Frames are immutable, so the returned list shares nothing
        mutable with the live buffer.
        """
        start %= len(self._slots)
        return self._slots[start:] + self._slots[:start]

    @property
    def occupied(self) -> int:
        """Number of slots holding a frame."""
        return sum(1 for slot in self._slots if slot is not None)

    def get_status(self) -> dict:
        """Get buffer status."""
        return {
            "capacity": self.size(),
            "occupied": self.occupied,
        }
