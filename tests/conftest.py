"""
Pytest configuration and shared fixtures for SillCam tests.
"""

import sys
from datetime import datetime, timedelta
from io import BytesIO
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sillcam.camera.capture_scheduler import CaptureScheduler
from sillcam.context import CaptureContext
from sillcam.storage.frame_writer import FrameWriter
from sillcam.storage.history_worker import HistoryDumpWorker
from sillcam.storage.rolling_save import SaveCoordinator
from sillcam.storage.single_frame import SingleFrameSaver

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeCamera:
    """Camera returning the same JPEG every call, except on scripted misses."""

    def __init__(self, data: bytes, misses: set[int] | None = None):
        self.data = data
        self.misses = misses or set()
        self.calls = 0

    def next_frame(self) -> bytes | None:
        self.calls += 1
        if self.calls in self.misses:
            return None
        return self.data


def make_jpeg(size: tuple[int, int] = (16, 16)) -> bytes:
    pixels = np.random.randint(0, 255, (size[1], size[0], 3), dtype=np.uint8)
    buf = BytesIO()
    Image.fromarray(pixels).save(buf, "JPEG", quality=90)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    """A small valid JPEG image."""
    return make_jpeg()


@pytest.fixture
def clock():
    """A manually advanced wall clock."""
    return FakeClock()


@pytest.fixture
def context(clock):
    """Capture context with 10 history slots."""
    return CaptureContext(history_size=10, clock=clock)


@pytest.fixture
def camera(jpeg_bytes):
    """Camera that never misses."""
    return FakeCamera(jpeg_bytes)


@pytest.fixture
def writer(tmp_path):
    """FrameWriter writing into a temp dir, one file per millisecond."""
    return FrameWriter(output_format=str(tmp_path / "capture{ms}.jpg"))


@pytest.fixture
def worker(writer):
    """History dump worker without inter-write pause."""
    dump_worker = HistoryDumpWorker(writer, pause_seconds=0)
    yield dump_worker
    dump_worker.shutdown(wait=True)


@pytest.fixture
def bus():
    """Message bus stand-in recording sent messages."""
    return MagicMock()


@pytest.fixture
def coordinator(context, writer, worker, bus):
    """SaveCoordinator with a 20 tick rolling window."""
    return SaveCoordinator(context, writer, worker, bus=bus, save_period=20)


@pytest.fixture
def single_saver(context, writer, bus):
    """SingleFrameSaver sharing the context and bus."""
    return SingleFrameSaver(context, writer, bus=bus)


@pytest.fixture
def scheduler(context, camera, coordinator):
    """CaptureScheduler at 2 fps (ticks are driven by hand)."""
    return CaptureScheduler(context, camera, coordinator=coordinator, framerate=2)


def run_ticks(scheduler: CaptureScheduler, clock: FakeClock, count: int) -> None:
    """Advance the clock one frame period and tick, ``count`` times."""
    for _ in range(count):
        clock.advance(scheduler.period)
        scheduler.tick()
