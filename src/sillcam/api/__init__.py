"""
API module for SillCam.

Provides:
- FastAPI server for status and manual triggers
"""

from .server import create_app, set_components, start_server

__all__ = ["create_app", "set_components", "start_server"]
