"""
Tests for HistoryDumpWorker.
"""

import os
import threading
from datetime import datetime, timedelta
from unittest.mock import patch

from sillcam.camera.ring_buffer import Frame
from sillcam.storage.history_worker import HistoryDumpWorker


def _frames(jpeg_bytes, count):
    base = datetime(2026, 1, 1, 12, 0, 0)
    return [
        Frame(data=jpeg_bytes, timestamp=base + timedelta(seconds=i), frame_number=i)
        for i in range(count)
    ]


class TestHistoryDump:
    """Tests for dump execution."""

    def test_dumps_every_frame(self, worker, writer, jpeg_bytes):
        """Each frame of the snapshot is written; the future reports the count."""
        snapshot = _frames(jpeg_bytes, 5)

        written = worker.submit(snapshot).result(timeout=5)

        assert written == 5
        for frame in snapshot:
            assert writer.output_path(frame.timestamp).exists()

    def test_skips_absent_and_bad_frames(self, worker, writer, jpeg_bytes):
        """Absent slots and undecodable frames are skipped, the rest still written."""
        good = _frames(jpeg_bytes, 3)
        bad = Frame(data=b"garbage" * 50, timestamp=datetime(2026, 1, 1, 13, 0, 0))
        snapshot = [None, good[0], bad, good[1], None, good[2]]

        assert worker.submit(snapshot).result(timeout=5) == 3
        assert writer.skipped_count == 1

    def test_writes_in_snapshot_order(self, worker, writer, jpeg_bytes):
        snapshot = _frames(jpeg_bytes, 4)
        with patch.object(writer, "save", wraps=writer.save) as save:
            worker.submit(snapshot).result(timeout=5)
        assert [c.args[0].frame_number for c in save.call_args_list] == [0, 1, 2, 3]

    def test_dumps_run_one_at_a_time(self, writer, jpeg_bytes):
        """A second dump waits for the first instead of running alongside it."""
        worker = HistoryDumpWorker(writer, pause_seconds=0)
        release = threading.Event()
        active = []
        overlap = []

        def slow_save(frame):
            active.append(frame)
            if len(active) > 1:
                overlap.append(True)
            release.wait(timeout=5)
            active.remove(frame)
            return None

        with patch.object(writer, "save", side_effect=slow_save):
            first = worker.submit(_frames(jpeg_bytes, 1))
            second = worker.submit(_frames(jpeg_bytes, 1))
            assert worker.busy
            release.set()
            first.result(timeout=5)
            second.result(timeout=5)

        worker.shutdown()
        assert overlap == []
        assert worker.get_status()["dumps_started"] == 2

    def test_runs_while_capture_lock_held(self, context, worker, jpeg_bytes):
        """A dump never needs the capture lock."""
        with context.lock:
            written = worker.submit(_frames(jpeg_bytes, 2)).result(timeout=5)
        assert written == 2

    def test_pause_between_writes(self, writer, jpeg_bytes):
        worker = HistoryDumpWorker(writer, pause_seconds=0.01)
        with patch("sillcam.storage.history_worker.time.sleep") as sleep:
            worker.submit(_frames(jpeg_bytes, 3)).result(timeout=5)
        worker.shutdown()
        assert sleep.call_count == 3

    def test_runs_on_named_thread(self, worker, writer, jpeg_bytes):
        names = []
        original = writer.save

        def record(frame):
            names.append(threading.current_thread().name)
            return original(frame)

        with patch.object(writer, "save", side_effect=record):
            worker.submit(_frames(jpeg_bytes, 1)).result(timeout=5)
        assert names[0].startswith("HistoryDump")

    def test_status_after_completion(self, worker, jpeg_bytes):
        worker.submit(_frames(jpeg_bytes, 1)).result(timeout=5)
        status = worker.get_status()
        assert status["dumps_completed"] == 1
        assert status["busy"] is False


class TestDumpPriority:
    """The dump thread drops to the lowest scheduling priority."""

    def test_thread_niceness_lowered(self, writer, jpeg_bytes):
        """The executor initializer renices the dump thread itself to 19."""
        native_ids = []
        original = writer.save

        def record(frame):
            native_ids.append(threading.get_native_id())
            return original(frame)

        with patch("sillcam.storage.history_worker.os.setpriority") as setpriority, \
                patch.object(writer, "save", side_effect=record):
            worker = HistoryDumpWorker(writer, pause_seconds=0)
            worker.submit(_frames(jpeg_bytes, 1)).result(timeout=5)
            worker.shutdown()

        setpriority.assert_called_once_with(os.PRIO_PROCESS, native_ids[0], 19)
        assert native_ids[0] != threading.get_native_id()

    def test_dump_completes_when_renice_refused(self, writer, jpeg_bytes):
        """A refused priority change is logged and the dump still runs."""
        with patch(
            "sillcam.storage.history_worker.os.setpriority",
            side_effect=OSError("Operation not permitted"),
        ) as setpriority:
            worker = HistoryDumpWorker(writer, pause_seconds=0)
            written = worker.submit(_frames(jpeg_bytes, 2)).result(timeout=5)
            worker.shutdown()

        setpriority.assert_called_once()
        assert written == 2
        assert worker.get_status()["dumps_completed"] == 1
