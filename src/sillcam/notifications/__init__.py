"""
Notifications module for SillCam.

Provides:
- MessageBus: regex-bound text messages over MQTT
- Message formatting for outbound notifications
"""

from .message_bus import MessageBus
from .messages import picture_message, rolling_done_message

__all__ = ["MessageBus", "picture_message", "rolling_done_message"]
