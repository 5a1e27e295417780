"""Single-frame save: persist the most recently captured frame on demand."""

import logging
from pathlib import Path

from sillcam.context import CaptureContext
from sillcam.notifications.messages import picture_message
from sillcam.storage.frame_writer import FrameWriter

logger = logging.getLogger(__name__)


class SingleFrameSaver:
    """Saves the slot just behind the write cursor; ignores rolling-save state."""

    def __init__(self, context: CaptureContext, writer: FrameWriter, bus=None):
        self.context = context
        self.writer = writer
        self.bus = bus
        self._saves = 0

    def save_most_recent(self) -> Path:
        """
        Persist the most recently completed frame and announce it.

        Returns:
            Output path derived from the timestamp persist() reported
        """
        ctx = self.context
        with ctx.lock:
            index = ctx.most_recent_index
            logger.info(f"Saving single picture (slot {index})")
            saved_at = self.writer.persist(ctx.ring.get(index))
            path = self.writer.output_path(saved_at)
            self._saves += 1
            if self.bus is not None:
                self.bus.send(picture_message(path))
        return path

    def get_status(self) -> dict:
        return {"saves": self._saves}
