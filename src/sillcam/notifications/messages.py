"""Text messages exchanged on the bus."""

from datetime import datetime
from pathlib import Path

PICTURE_MESSAGE = "SILLCAM_PICTURE"
ROLLING_DONE_MESSAGE = "SILLCAM_ROLLING_DONE"


def unix_seconds(timestamp: datetime) -> int:
    return int(timestamp.timestamp())


def picture_message(path: str | Path) -> str:
    """Sent after a single-frame save: ``SILLCAM_PICTURE <path>``."""
    return f"{PICTURE_MESSAGE} {path}"


def rolling_done_message(window_start: datetime, window_end: datetime) -> str:
    """Sent when a rolling window expires: ``SILLCAM_ROLLING_DONE <start> <end>``."""
    return f"{ROLLING_DONE_MESSAGE} {unix_seconds(window_start)} {unix_seconds(window_end)}"
