"""
Capture Scheduler - periodic frame acquisition

Runs the capture loop on its own thread. Each tick, under the context
lock: read one frame from the camera, stamp it, store it at the write
cursor, let the save coordinator act on it, then advance the cursor.

Ticks are paced against absolute deadlines on a monotonic clock, so a
slow tick does not shift the schedule. A tick that overruns its
deadline is followed immediately by the next one; missed ticks are not
made up.
"""

import logging
import threading
import time
from typing import TYPE_CHECKING

from sillcam.camera.ring_buffer import Frame

if TYPE_CHECKING:
    from sillcam.context import CaptureContext

logger = logging.getLogger(__name__)


class CaptureScheduler:
    """Drives the capture cadence over a CaptureContext."""

    def __init__(
        self,
        context: "CaptureContext",
        device,
        coordinator=None,
        framerate: float = 1.0,
    ):
        """
        Args:
            context: Shared capture state
            device: Camera with ``next_frame() -> bytes | None``
            coordinator: Object whose ``on_tick()`` runs inside each tick
            framerate: Ticks per second
        """
        if framerate <= 0:
            raise ValueError(f"framerate must be > 0, got {framerate}")

        self.context = context
        self.device = device
        self.coordinator = coordinator
        self.framerate = framerate
        self.period = 1.0 / framerate

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._tick_count = 0
        self._miss_count = 0
        self._overrun_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def start(self) -> None:
        """Start the capture thread."""
        if self.running:
            logger.warning("Capture scheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="CaptureScheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Capture scheduler started ({self.framerate}fps)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the capture thread and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.error(f"Capture thread did not stop within {timeout}s")
            self._thread = None
        logger.info("Capture scheduler stopped")

    def _run(self) -> None:
        logger.info("Capture loop started")
        deadline = time.monotonic()

        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Capture tick error: {e}", exc_info=True)

            deadline += self.period
            remaining = deadline - time.monotonic()
            if remaining > 0:
                self._stop_event.wait(remaining)
            else:
                self._overrun_count += 1
                logger.debug(f"Tick overran its deadline by {-remaining * 1000:.0f}ms")
                deadline = time.monotonic()

        logger.info("Capture loop stopped")

    def tick(self) -> Frame | None:
        """Capture one frame into the history; returns what was stored."""
        ctx = self.context
        with ctx.lock:
            self._tick_count += 1
            try:
                data = self.device.next_frame()
            except Exception as e:
                logger.error(f"Camera read failed: {e}")
                data = None

            if data:
                frame = Frame(
                    data=bytes(data),
                    timestamp=ctx.clock(),
                    frame_number=self._tick_count,
                )
            else:
                self._miss_count += 1
                logger.debug(f"No frame from camera on tick {self._tick_count}, slot marked absent")
                frame = None

            ctx.ring.put(ctx.write_cursor, frame)
            if self.coordinator is not None:
                self.coordinator.on_tick()
            ctx.advance_cursor()
        return frame

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "framerate": self.framerate,
            "ticks": self._tick_count,
            "misses": self._miss_count,
            "overruns": self._overrun_count,
        }
