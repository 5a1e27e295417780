"""
SillCam - Rolling frame history camera controller

Hardware: V4L2 camera (/dev/video0) on a small Linux board
Triggers: text messages on an MQTT bus (rolling save / single capture)
"""

__version__ = "1.0.0"
__author__ = "SillCam Team"
