"""
Rolling Save Coordinator

Owns the rolling-save state machine:
IDLE (save_timer == 0) -> ROLLING (save_timer == save_period) -> ... -> IDLE

A trigger while IDLE opens a window and hands a snapshot of the whole
history to the dump worker. A trigger while ROLLING only resets the
countdown, so repeated triggers coalesce into one history dump plus a
longer tail of per-tick saves.
"""

import logging
from concurrent.futures import Future

from sillcam.context import CaptureContext
from sillcam.notifications.messages import rolling_done_message
from sillcam.storage.frame_writer import FrameWriter
from sillcam.storage.history_worker import HistoryDumpWorker

logger = logging.getLogger(__name__)


class SaveCoordinator:
    """Start/extend rolling windows and persist one frame per tick while active."""

    def __init__(
        self,
        context: CaptureContext,
        writer: FrameWriter,
        worker: HistoryDumpWorker,
        bus=None,
        save_period: int = 20,
    ):
        """
        Args:
            context: Shared capture state (its lock guards the countdown)
            writer: Persistence primitive for per-tick saves
            worker: Background writer for history snapshots
            bus: Anything with ``send(text)``; None disables notifications
            save_period: Ticks persisted after the latest trigger
        """
        if save_period < 1:
            raise ValueError(f"save_period must be >= 1, got {save_period}")

        self.context = context
        self.writer = writer
        self.worker = worker
        self.bus = bus
        self.save_period = save_period

        self._windows_opened = 0
        self._windows_extended = 0
        self._windows_completed = 0

    @property
    def is_rolling(self) -> bool:
        with self.context.lock:
            return self.context.save_timer > 0

    def start_or_extend_rolling(self) -> Future | None:
        """
        Handle a rolling-save trigger.

        Returns:
            The history dump Future if a fresh window was opened, else None
        """
        ctx = self.context
        snapshot = None
        with ctx.lock:
            if ctx.save_timer == 0:
                ctx.window_start = ctx.clock()
                snapshot = ctx.ring.snapshot(start=ctx.write_cursor)
                self._windows_opened += 1
                logger.info(
                    f"Rolling window opened at {ctx.window_start.isoformat()} "
                    f"({self.save_period} ticks)"
                )
            else:
                self._windows_extended += 1
                logger.info(
                    f"Rolling window extended ({ctx.save_timer} -> {self.save_period} ticks)"
                )
            ctx.save_timer = self.save_period

        if snapshot is None:
            return None
        return self.worker.submit(snapshot)

    def on_tick(self) -> None:
        """
        Per-tick action; the scheduler calls this holding the context lock.

        Persists the frame just captured at the write cursor while a window
        is active and emits the completion message when the countdown ends.
        """
        ctx = self.context
        if ctx.save_timer <= 0:
            return

        logger.info(f"Rolling save ({ctx.save_timer} remaining)")
        saved_at = self.writer.persist(ctx.ring.get(ctx.write_cursor))
        ctx.save_timer -= 1

        if ctx.save_timer == 0:
            self._windows_completed += 1
            message = rolling_done_message(ctx.window_start, saved_at)
            logger.info(f"Rolling window complete: {message}")
            ctx.window_start = None
            if self.bus is not None:
                self.bus.send(message)

    def get_status(self) -> dict:
        return {
            "save_period": self.save_period,
            "rolling": self.is_rolling,
            "windows_opened": self._windows_opened,
            "windows_extended": self._windows_extended,
            "windows_completed": self._windows_completed,
        }
