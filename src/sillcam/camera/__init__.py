"""
Camera module for SillCam.

Provides:
- Frame / SnapshotRingBuffer: fixed-capacity frame history
- CameraDevice / MockCameraDevice: V4L2 frame source and its simulation
- CaptureScheduler: deadline-paced capture loop
"""

from .capture_scheduler import CaptureScheduler
from .device import CameraDevice, MockCameraDevice, create_camera_device
from .ring_buffer import Frame, SnapshotRingBuffer

__all__ = [
    "CaptureScheduler",
    "CameraDevice",
    "MockCameraDevice",
    "create_camera_device",
    "Frame",
    "SnapshotRingBuffer",
]
