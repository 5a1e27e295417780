"""
Frame Writer - best-effort persistence of a single frame

Validates a frame, decodes it through Pillow and writes it to a path
derived from the output template and the frame timestamp. Failures are
logged and never raised: callers always get a timestamp back.
"""

import logging
import threading
from datetime import datetime, timedelta
from io import BytesIO
from pathlib import Path

from PIL import Image

from sillcam.camera.ring_buffer import Frame

logger = logging.getLogger(__name__)

# Frames stamped before this are treated as coming from an unset clock
MIN_PLAUSIBLE_TIMESTAMP = datetime(2000, 1, 1)


def resolves_subsecond(output_format: str) -> bool:
    """True if the template gives frames within one second distinct paths."""
    return output_format.format(0, ms=0) != output_format.format(0, ms=500)


class FrameWriter:
    """
    Persists frames as image files.

    Shared by the rolling save, the single-frame save and the history
    dump worker; safe to call from several threads at once.
    """

    def __init__(
        self,
        output_format: str = "runtime/captures/capture{0}.jpg",
        min_frame_bytes: int = 64,
        max_clock_skew_seconds: float = 300.0,
        framerate: float = 1.0,
    ):
        """
        Args:
            output_format: Path template; {0} is unix seconds, {ms} unix milliseconds
            min_frame_bytes: Shortest frame that will be handed to the codec
            max_clock_skew_seconds: Largest accepted distance into the future
            framerate: Capture rate the template has to keep apart

        Raises:
            ValueError: Template would map several frames per second to one path
        """
        if framerate > 1 and not resolves_subsecond(output_format):
            raise ValueError(
                f"output_format {output_format!r} has one-second resolution but "
                f"framerate is {framerate}; use {{ms}} in the template"
            )

        self.output_format = output_format
        self.min_frame_bytes = min_frame_bytes
        self.max_clock_skew = timedelta(seconds=max_clock_skew_seconds)

        self._counter_lock = threading.Lock()
        self._saved_count = 0
        self._skipped_count = 0

        logger.info(
            f"FrameWriter initialized: format={output_format}, "
            f"min_bytes={min_frame_bytes}, max_skew={max_clock_skew_seconds}s"
        )

    def output_path(self, timestamp: datetime) -> Path:
        """Path the frame captured at ``timestamp`` is written to."""
        unix = timestamp.timestamp()
        return Path(self.output_format.format(int(unix), ms=int(unix * 1000)))

    def validate(self, frame: Frame | None) -> str | None:
        """Return the reason a frame cannot be persisted, or None if it can."""
        if frame is None:
            return "absent slot"
        if frame.size < self.min_frame_bytes:
            return f"frame too short ({frame.size} < {self.min_frame_bytes} bytes)"
        if frame.timestamp < MIN_PLAUSIBLE_TIMESTAMP:
            return f"implausible timestamp {frame.timestamp.isoformat()}"
        if frame.timestamp > datetime.now() + self.max_clock_skew:
            return f"timestamp in the future {frame.timestamp.isoformat()}"
        return None

    def save(self, frame: Frame | None) -> Path | None:
        """
        Write a frame to storage.

        Returns:
            Path written, or None if the frame was skipped
        """
        problem = self.validate(frame)
        if problem:
            logger.warning(f"Skipping persist: {problem}")
            self._count(saved=False)
            return None

        path = self.output_path(frame.timestamp)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with Image.open(BytesIO(frame.data)) as img:
                img.save(path)
        except (OSError, ValueError) as e:
            logger.error(
                f"Failed to write frame #{frame.frame_number} "
                f"({frame.size} bytes) to {path}: {e}"
            )
            self._count(saved=False)
            return None

        logger.info(f"Wrote image to file: {path}")
        self._count(saved=True)
        return path

    def persist(self, frame: Frame | None) -> datetime:
        """
        Best-effort write used by the save handlers.

        Returns:
            The frame timestamp when written, otherwise the current time
        """
        if self.save(frame) is None:
            return datetime.now()
        return frame.timestamp

    def _count(self, saved: bool) -> None:
        with self._counter_lock:
            if saved:
                self._saved_count += 1
            else:
                self._skipped_count += 1

    @property
    def saved_count(self) -> int:
        return self._saved_count

    @property
    def skipped_count(self) -> int:
        return self._skipped_count

    def get_status(self) -> dict:
        return {
            "output_format": self.output_format,
            "saved_count": self._saved_count,
            "skipped_count": self._skipped_count,
        }
