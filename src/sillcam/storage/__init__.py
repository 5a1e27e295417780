"""Storage module: frame persistence, rolling saves and history dumps."""

from sillcam.storage.frame_writer import FrameWriter
from sillcam.storage.history_worker import HistoryDumpWorker
from sillcam.storage.rolling_save import SaveCoordinator
from sillcam.storage.single_frame import SingleFrameSaver

__all__ = [
    "FrameWriter",
    "HistoryDumpWorker",
    "SaveCoordinator",
    "SingleFrameSaver",
]
