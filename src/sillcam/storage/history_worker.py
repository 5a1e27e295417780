"""
History Dump Worker

Persists a private copy of the whole frame history without holding the
capture lock. Dumps run one at a time on a dedicated low-priority
thread; a dump requested while another is running queues behind it.
"""

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from sillcam.camera.ring_buffer import Frame
from sillcam.storage.frame_writer import FrameWriter

logger = logging.getLogger(__name__)

# Nice value for the dump thread (19 = lowest priority on Linux)
DUMP_THREAD_NICENESS = 19


def _lower_thread_priority() -> None:
    """Drop the calling thread to the lowest scheduling priority."""
    try:
        os.setpriority(os.PRIO_PROCESS, threading.get_native_id(), DUMP_THREAD_NICENESS)
        logger.debug(f"History dump thread niceness set to {DUMP_THREAD_NICENESS}")
    except (AttributeError, OSError) as e:
        logger.debug(f"Could not lower history dump thread priority: {e}")


class HistoryDumpWorker:
    """
    Background writer for history snapshots.

    ``submit()`` returns a Future that resolves to the number of frames
    written once the dump finishes.
    """

    def __init__(self, writer: FrameWriter, pause_seconds: float = 0.05):
        self.writer = writer
        self.pause_seconds = pause_seconds

        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="HistoryDump",
            initializer=_lower_thread_priority,
        )
        self._dumps_started = 0
        self._dumps_completed = 0
        self._last_future: Future | None = None

    def submit(self, snapshot: list[Frame | None]) -> Future:
        """Queue a dump of ``snapshot``; the list is owned by the worker from now on."""
        self._dumps_started += 1
        dump_id = self._dumps_started
        future = self._executor.submit(self._dump, dump_id, snapshot)
        future.add_done_callback(self._dump_callback)
        self._last_future = future
        logger.info(f"History dump #{dump_id} queued ({len(snapshot)} slots)")
        return future

    def _dump(self, dump_id: int, snapshot: list[Frame | None]) -> int:
        started = time.monotonic()
        written = 0
        for frame in snapshot:
            if frame is None:
                continue
            # save() logs and swallows per-frame failures
            if self.writer.save(frame) is not None:
                written += 1
            if self.pause_seconds > 0:
                time.sleep(self.pause_seconds)

        logger.info(
            f"History dump #{dump_id} complete: {written}/{len(snapshot)} frames "
            f"in {time.monotonic() - started:.2f}s"
        )
        self._dumps_completed += 1
        return written

    def _dump_callback(self, future: Future) -> None:
        """Log dump errors (prevents silent failures)."""
        if future.cancelled():
            logger.info("History dump cancelled before it started")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"History dump failed: {error}", exc_info=error)

    @property
    def busy(self) -> bool:
        return self._last_future is not None and not self._last_future.done()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting dumps; optionally wait for queued ones to finish."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        logger.info("History dump worker stopped")

    def get_status(self) -> dict:
        return {
            "dumps_started": self._dumps_started,
            "dumps_completed": self._dumps_completed,
            "busy": self.busy,
            "pause_seconds": self.pause_seconds,
        }
