"""
Camera Device - V4L2 frame source

Wraps an OpenCV VideoCapture on a device node and hands out one
JPEG-encoded frame per call. A simulated device with the same interface
is available for development and testing without hardware.
"""

import logging
from io import BytesIO

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


class CameraDevice:
    """
    Single V4L2 camera opened through OpenCV.

    ``next_frame()`` blocks for at most one driver frame period and
    returns JPEG bytes, or None when the driver delivers nothing.
    """

    def __init__(
        self,
        device_path: str = "/dev/video0",
        resolution: tuple[int, int] = (640, 480),
        framerate: float = 1.0,
        jpeg_quality: int = 90,
    ):
        self.device_path = device_path
        self.resolution = resolution
        self.framerate = framerate
        self.jpeg_quality = jpeg_quality

        self._capture: cv2.VideoCapture | None = None
        self._frames_read = 0
        self._misses = 0

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def open(self) -> None:
        """Open the device node."""
        if self.is_open:
            logger.warning(f"Camera {self.device_path} already open")
            return

        self._capture = cv2.VideoCapture(self.device_path, cv2.CAP_V4L2)
        if not self._capture.isOpened():
            logger.error(f"Could not open camera {self.device_path}")
            return
        logger.info(f"Camera opened: {self.device_path}")

    def configure_stream(self) -> None:
        """Apply resolution and framerate; keep only the newest driver frame."""
        if not self.is_open:
            logger.warning("configure_stream() called on closed camera")
            return

        width, height = self.resolution
        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        self._capture.set(cv2.CAP_PROP_FPS, self.framerate)
        self._capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        logger.info(
            f"Camera configured: {width}x{height} @ {self.framerate}fps "
            f"(driver reports {self._capture.get(cv2.CAP_PROP_FRAME_WIDTH):.0f}x"
            f"{self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT):.0f})"
        )

    def next_frame(self) -> bytes | None:
        """Read one frame and return it JPEG-encoded, or None on a miss."""
        if not self.is_open:
            self._misses += 1
            return None

        ok, image = self._capture.read()
        if not ok or image is None or image.size == 0:
            self._misses += 1
            return None

        ok, encoded = cv2.imencode(
            ".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality]
        )
        if not ok:
            self._misses += 1
            return None

        self._frames_read += 1
        return encoded.tobytes()

    def close(self) -> None:
        """Release the device."""
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera closed: {self.device_path}")

    def get_status(self) -> dict:
        return {
            "device_path": self.device_path,
            "open": self.is_open,
            "resolution": self.resolution,
            "framerate": self.framerate,
            "frames_read": self._frames_read,
            "misses": self._misses,
            "simulated": False,
        }


class MockCameraDevice:
    """Simulated camera for development/testing without hardware."""

    def __init__(
        self,
        resolution: tuple[int, int] = (640, 480),
        framerate: float = 1.0,
        jpeg_quality: int = 90,
        miss_every: int = 0,
    ):
        self.device_path = "mock"
        self.resolution = resolution
        self.framerate = framerate
        self.jpeg_quality = jpeg_quality
        self.miss_every = miss_every

        self._open = False
        self._calls = 0
        self._frames_read = 0
        self._misses = 0
        logger.info("[MOCK] Camera initialized")

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        logger.info("[MOCK] Camera opened")

    def configure_stream(self) -> None:
        logger.info(f"[MOCK] Camera configured: {self.resolution} @ {self.framerate}fps")

    def next_frame(self) -> bytes | None:
        """Generate a random JPEG frame."""
        self._calls += 1
        if not self._open or (self.miss_every and self._calls % self.miss_every == 0):
            self._misses += 1
            return None

        width, height = self.resolution
        pixels = np.random.randint(0, 255, (height, width, 3), dtype=np.uint8)
        buf = BytesIO()
        Image.fromarray(pixels).save(buf, "JPEG", quality=self.jpeg_quality)
        self._frames_read += 1
        return buf.getvalue()

    def close(self) -> None:
        self._open = False
        logger.info("[MOCK] Camera closed")

    def get_status(self) -> dict:
        return {
            "device_path": self.device_path,
            "open": self._open,
            "resolution": self.resolution,
            "framerate": self.framerate,
            "frames_read": self._frames_read,
            "misses": self._misses,
            "simulated": True,
        }


def create_camera_device(
    device_path: str,
    resolution: tuple[int, int],
    framerate: float,
    jpeg_quality: int = 90,
    simulate: bool = False,
) -> CameraDevice | MockCameraDevice:
    """Build the real or simulated camera."""
    if simulate:
        return MockCameraDevice(
            resolution=resolution, framerate=framerate, jpeg_quality=jpeg_quality
        )
    return CameraDevice(
        device_path=device_path,
        resolution=resolution,
        framerate=framerate,
        jpeg_quality=jpeg_quality,
    )
