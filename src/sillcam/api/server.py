"""
FastAPI Server - REST API for status and manual triggers

Provides HTTP endpoints for:
- System status and health checks
- Frame history occupancy
- Manual single capture and rolling save (same effect as bus triggers)

Security: Designed for local network or VPN access.
Do NOT expose directly to the internet without authentication.
"""

import logging
from datetime import datetime
from typing import Any

import psutil
import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from sillcam import __version__

logger = logging.getLogger(__name__)


class StatusResponse(BaseModel):
    """System status response."""

    timestamp: str
    system: dict[str, Any]
    buffer: dict[str, Any] | None
    camera: dict[str, Any] | None
    scheduler: dict[str, Any] | None
    rolling: dict[str, Any] | None
    storage: dict[str, Any] | None
    bus: dict[str, Any] | None


class ActionResponse(BaseModel):
    """Action result response."""

    success: bool
    message: str
    timestamp: str


# Global component references
_context = None
_camera = None
_scheduler = None
_coordinator = None
_single_saver = None
_writer = None
_bus = None


def set_components(
    context=None,
    camera=None,
    scheduler=None,
    coordinator=None,
    single_saver=None,
    writer=None,
    bus=None,
) -> None:
    """Set references to system components."""
    global _context, _camera, _scheduler, _coordinator, _single_saver, _writer, _bus
    _context = context
    _camera = camera
    _scheduler = scheduler
    _coordinator = coordinator
    _single_saver = single_saver
    _writer = writer
    _bus = bus


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SillCam API",
        description="REST API for the sill camera frame history",
        version=__version__,
    )

    # ==================== Status Endpoints ====================

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint - basic health check."""
        return {
            "service": "SillCam",
            "version": __version__,
            "status": "running",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        """Get full system status."""
        system_status = {
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
            "uptime_seconds": _get_uptime(),
        }

        return StatusResponse(
            timestamp=datetime.now().isoformat(),
            system=system_status,
            buffer=_context.get_status() if _context else None,
            camera=_camera.get_status() if _camera else None,
            scheduler=_scheduler.get_status() if _scheduler else None,
            rolling=_coordinator.get_status() if _coordinator else None,
            storage=_writer.get_status() if _writer else None,
            bus=_bus.get_status() if _bus else None,
        )

    @app.get("/buffer")
    def buffer_status():
        """Get frame history occupancy and rolling-save state."""
        if not _context:
            raise HTTPException(status_code=503, detail="Capture context not available")
        return _context.get_status()

    # ==================== Triggers ====================

    @app.post("/capture", response_model=ActionResponse)
    def trigger_capture():
        """Save the most recent frame."""
        if not _single_saver:
            raise HTTPException(status_code=503, detail="Single-frame save not available")

        path = _single_saver.save_most_recent()
        return ActionResponse(
            success=True,
            message=str(path),
            timestamp=datetime.now().isoformat(),
        )

    @app.post("/rolling", response_model=ActionResponse)
    def trigger_rolling():
        """Start or extend a rolling save."""
        if not _coordinator:
            raise HTTPException(status_code=503, detail="Rolling save not available")

        dump = _coordinator.start_or_extend_rolling()
        return ActionResponse(
            success=True,
            message="Rolling window opened" if dump is not None else "Rolling window extended",
            timestamp=datetime.now().isoformat(),
        )

    return app


def _get_uptime() -> float:
    """Get system uptime in seconds."""
    try:
        with open("/proc/uptime") as f:
            return float(f.read().split()[0])
    except OSError:
        return 0.0


async def start_server(host: str = "0.0.0.0", port: int = 8080, **components) -> None:
    """
    Start the API server.

    Args:
        host: Bind host
        port: Bind port
        **components: Passed to set_components()
    """
    set_components(**components)

    app = create_app()

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )

    server = uvicorn.Server(config)

    logger.info(f"Starting API server on {host}:{port}")
    await server.serve()
