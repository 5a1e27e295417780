"""
SillCam Main Controller

Wires the capture pipeline together and runs it until stopped:
- Capture scheduler filling the frame history at a fixed cadence
- Rolling save (bus pattern, default TOKEN_.*) with background history dump
- Single-frame save (bus message, default SILLCAM_CAPTURE)
- REST API server
"""

import asyncio
import logging
import re
import signal
import sys
import time

logger = logging.getLogger(__name__)

# Seconds between status lines in the log
HEARTBEAT_INTERVAL = 60


class SillCamController:
    """
    Main controller owning every component for the process lifetime.

    Trigger handlers run on the bus thread pool, the capture loop on its
    own thread, history dumps on the dump worker thread; this object only
    builds, starts and stops them.
    """

    def __init__(self):
        """Initialize the controller."""
        self._running = False

        # Component instances (initialized in start())
        self._context = None
        self._camera = None
        self._writer = None
        self._worker = None
        self._coordinator = None
        self._single_saver = None
        self._scheduler = None
        self._bus = None

        # Background async tasks (for proper cancellation on shutdown)
        self._background_tasks: list[asyncio.Task] = []

        logger.info("SillCamController initialized")

    async def start(self) -> None:
        """Start the SillCam service."""
        from sillcam.config import api_config, ensure_runtime_dirs, setup_logging

        setup_logging()
        ensure_runtime_dirs()

        logger.info("=== Starting SillCam ===")

        self._init_components()
        self._setup_signal_handlers()
        self._running = True

        # Broker connection retries block; keep them off the event loop
        await asyncio.get_running_loop().run_in_executor(None, self._bus.start)

        self._camera.open()
        self._camera.configure_stream()
        self._scheduler.start()

        if api_config.enabled:
            from sillcam.api.server import start_server

            task = asyncio.create_task(
                start_server(
                    host=api_config.host,
                    port=api_config.port,
                    context=self._context,
                    camera=self._camera,
                    scheduler=self._scheduler,
                    coordinator=self._coordinator,
                    single_saver=self._single_saver,
                    writer=self._writer,
                    bus=self._bus,
                ),
                name="api_server",
            )
            self._background_tasks.append(task)
            logger.info(f"API server task started on {api_config.host}:{api_config.port}")

        logger.info("=== SillCam Running ===")

        last_heartbeat = time.monotonic()
        try:
            while self._running:
                await asyncio.sleep(1)
                if time.monotonic() - last_heartbeat >= HEARTBEAT_INTERVAL:
                    last_heartbeat = time.monotonic()
                    self._log_heartbeat()
        except asyncio.CancelledError:
            logger.info("Main loop cancelled")

        await self._shutdown()

    def _init_components(self) -> None:
        """Build the capture pipeline from configuration."""
        from sillcam.camera.capture_scheduler import CaptureScheduler
        from sillcam.camera.device import create_camera_device
        from sillcam.config import (
            buffer_config,
            bus_config,
            camera_config,
            storage_config,
        )
        from sillcam.context import CaptureContext
        from sillcam.notifications.message_bus import MessageBus
        from sillcam.storage.frame_writer import FrameWriter
        from sillcam.storage.history_worker import HistoryDumpWorker
        from sillcam.storage.rolling_save import SaveCoordinator
        from sillcam.storage.single_frame import SingleFrameSaver

        logger.info("Initializing components...")

        self._context = CaptureContext(history_size=buffer_config.history_size)

        self._bus = MessageBus(
            domain=bus_config.domain,
            topic=bus_config.topic,
            app_name=bus_config.app_name,
            handler_threads=bus_config.handler_threads,
            connect_attempts=bus_config.connect_attempts,
        )

        self._writer = FrameWriter(
            output_format=storage_config.output_format,
            min_frame_bytes=storage_config.min_frame_bytes,
            max_clock_skew_seconds=storage_config.max_clock_skew_seconds,
            framerate=camera_config.framerate,
        )
        self._worker = HistoryDumpWorker(
            self._writer, pause_seconds=storage_config.dump_pause_seconds
        )
        self._coordinator = SaveCoordinator(
            self._context,
            self._writer,
            self._worker,
            bus=self._bus,
            save_period=buffer_config.save_period,
        )
        self._single_saver = SingleFrameSaver(self._context, self._writer, bus=self._bus)

        self._camera = create_camera_device(
            device_path=camera_config.device_path,
            resolution=camera_config.resolution,
            framerate=camera_config.framerate,
            jpeg_quality=camera_config.jpeg_quality,
            simulate=camera_config.simulate,
        )
        self._scheduler = CaptureScheduler(
            self._context,
            self._camera,
            coordinator=self._coordinator,
            framerate=camera_config.framerate,
        )

        self._bus.bind(bus_config.rolling_pattern, self._handle_rolling_trigger)
        self._bus.bind(re.escape(bus_config.capture_message), self._handle_capture_trigger)

        logger.info(
            f"Components ready: history={buffer_config.history_size}, "
            f"save_period={buffer_config.save_period}, fps={camera_config.framerate}"
        )

    def _handle_rolling_trigger(self, message: str) -> None:
        """Bus handler: start or extend a rolling save."""
        logger.info(f"Saving history ({message})")
        self._coordinator.start_or_extend_rolling()

    def _handle_capture_trigger(self, message: str) -> None:
        """Bus handler: save the most recent frame."""
        logger.info("Saving single picture")
        self._single_saver.save_most_recent()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Signal {signum} received, initiating shutdown...")
            self._running = False

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _log_heartbeat(self) -> None:
        scheduler = self._scheduler.get_status()
        storage = self._writer.get_status()
        logger.info(
            f"Heartbeat: ticks={scheduler['ticks']}, misses={scheduler['misses']}, "
            f"overruns={scheduler['overruns']}, saved={storage['saved_count']}, "
            f"skipped={storage['skipped_count']}, bus_connected={self._bus.connected}"
        )

    async def _shutdown(self) -> None:
        """Clean shutdown of all components."""
        logger.info("Initiating shutdown...")

        if self._background_tasks:
            logger.info(f"Cancelling {len(self._background_tasks)} background tasks...")
            for task in self._background_tasks:
                if not task.done():
                    task.cancel()

            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._background_tasks, return_exceptions=True),
                    timeout=5.0,
                )
                logger.info("Background tasks cancelled successfully")
            except asyncio.TimeoutError:
                logger.warning("Background tasks did not cancel within 5s")
            self._background_tasks.clear()

        # Stop capturing first so no new windows open while tearing down
        if self._scheduler:
            self._scheduler.stop()

        if self._bus:
            self._bus.stop()

        # In-flight history dumps are allowed to finish
        if self._worker:
            self._worker.shutdown(wait=True)

        if self._camera:
            self._camera.close()

        logger.info("Shutdown complete")

    def get_status(self) -> dict:
        """Get full system status."""
        return {
            "running": self._running,
            "buffer": self._context.get_status() if self._context else None,
            "camera": self._camera.get_status() if self._camera else None,
            "scheduler": self._scheduler.get_status() if self._scheduler else None,
            "rolling": self._coordinator.get_status() if self._coordinator else None,
            "storage": self._writer.get_status() if self._writer else None,
            "bus": self._bus.get_status() if self._bus else None,
        }


# ==================== Entry Point ====================


async def app() -> None:
    """Main application entry point."""
    controller = SillCamController()
    await controller.start()


def main() -> None:
    """CLI entry point."""
    print("=== SillCam ===")
    print("Rolling frame history camera controller")
    print()

    try:
        asyncio.run(app())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
