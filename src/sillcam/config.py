"""
Configuration management for SillCam using Pydantic settings.

Loads configuration from:
1. .env file (if present)
2. config/config.json (defaults)
3. Environment variables (override with SILLCAM_ prefix)
"""

import json
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
RUNTIME_DIR = PROJECT_ROOT / "runtime"

# Load .env file from project root (if exists)
_env_file = PROJECT_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
    logger.debug(f"Loaded environment from {_env_file}")


def load_json_config() -> dict[str, Any]:
    """Load configuration from config.json file."""
    config_file = CONFIG_DIR / "config.json"
    if config_file.exists():
        with open(config_file) as f:
            return json.load(f)
    return {}


_json_config = load_json_config()


class BusConfig(BaseSettings):
    """Message bus (MQTT) configuration."""

    model_config = {"env_prefix": "SILLCAM_BUS_"}

    domain: str = Field(
        default=_json_config.get("bus", {}).get("domain", "127.0.0.1:1883"),
        description="Broker address as host:port",
    )
    topic: str = Field(
        default=_json_config.get("bus", {}).get("topic", "sillcam/bus"),
        description="Topic carrying the text messages",
    )
    app_name: str = Field(
        default=_json_config.get("bus", {}).get("app_name", "Sill Camera Controller"),
        description="Client name announced on the bus",
    )
    rolling_pattern: str = Field(
        default=_json_config.get("bus", {}).get("rolling_pattern", "TOKEN_.*"),
        description="Regex of messages that start or extend a rolling save",
    )
    capture_message: str = Field(
        default=_json_config.get("bus", {}).get("capture_message", "SILLCAM_CAPTURE"),
        description="Exact message that saves the most recent frame",
    )
    handler_threads: int = Field(
        default=_json_config.get("bus", {}).get("handler_threads", 4),
        description="Thread pool size for inbound message handlers",
    )
    connect_attempts: int = Field(
        default=_json_config.get("bus", {}).get("connect_attempts", 5),
        description="Broker connection attempts before giving up",
    )

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v):
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"domain must be host:port, got {v!r}")
        return v

    @field_validator("handler_threads", "connect_attempts")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @property
    def host(self) -> str:
        return self.domain.rpartition(":")[0]

    @property
    def port(self) -> int:
        return int(self.domain.rpartition(":")[2])


class CameraConfig(BaseSettings):
    """V4L2 camera configuration."""

    model_config = {"env_prefix": "SILLCAM_CAMERA_"}

    device_path: str = Field(
        default=_json_config.get("camera", {}).get("device_path", "/dev/video0"),
        description="Video device node",
    )
    resolution: tuple[int, int] = Field(
        default=tuple(_json_config.get("camera", {}).get("resolution", [640, 480])),
        description="Capture resolution (width, height)",
    )
    framerate: float = Field(
        default=_json_config.get("camera", {}).get("framerate", 1.0),
        description="Frames sampled into the history per second",
    )
    jpeg_quality: int = Field(
        default=_json_config.get("camera", {}).get("jpeg_quality", 90),
        description="JPEG quality used when encoding captured frames",
    )
    simulate: bool = Field(
        default=_json_config.get("camera", {}).get("simulate", False),
        description="Use a simulated camera instead of the device node",
    )

    @field_validator("resolution", mode="before")
    @classmethod
    def parse_resolution(cls, v):
        if isinstance(v, list):
            return tuple(v)
        return v

    @field_validator("framerate")
    @classmethod
    def validate_framerate(cls, v):
        if v <= 0 or v > 120:
            raise ValueError(f"framerate must be > 0 and <= 120, got {v}")
        return v

    @field_validator("jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, v):
        if v < 1 or v > 100:
            raise ValueError(f"jpeg_quality must be 1-100, got {v}")
        return v


class BufferConfig(BaseSettings):
    """Frame history configuration."""

    model_config = {"env_prefix": "SILLCAM_BUFFER_"}

    history_size: int = Field(
        default=_json_config.get("buffer", {}).get("history_size", 10),
        description="Number of frames kept in the rolling history",
    )
    save_period: int = Field(
        default=_json_config.get("buffer", {}).get("save_period", 20),
        description="Ticks persisted after the last rolling save trigger",
    )

    @field_validator("history_size", "save_period")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v


class StorageConfig(BaseSettings):
    """Frame persistence configuration."""

    model_config = {"env_prefix": "SILLCAM_STORAGE_"}

    output_format: str = Field(
        default=_json_config.get("storage", {}).get(
            "output_format", str(RUNTIME_DIR / "captures" / "capture{0}.jpg")
        ),
        description="Output path template; {0} is unix seconds, {ms} unix milliseconds",
    )
    min_frame_bytes: int = Field(
        default=_json_config.get("storage", {}).get("min_frame_bytes", 64),
        description="Frames shorter than this are never decoded",
    )
    max_clock_skew_seconds: float = Field(
        default=_json_config.get("storage", {}).get("max_clock_skew_seconds", 300),
        description="How far in the future a frame timestamp may lie",
    )
    dump_pause_seconds: float = Field(
        default=_json_config.get("storage", {}).get("dump_pause_seconds", 0.05),
        description="Pause between writes of a history dump",
    )

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v):
        try:
            v.format(0, ms=0)
        except (IndexError, KeyError, ValueError) as e:
            raise ValueError(f"output_format is not a valid template: {e}") from e
        return v

    @field_validator("min_frame_bytes")
    @classmethod
    def validate_min_frame_bytes(cls, v):
        if v < 1:
            raise ValueError(f"min_frame_bytes must be >= 1, got {v}")
        return v

    @field_validator("max_clock_skew_seconds", "dump_pause_seconds")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError(f"must be >= 0, got {v}")
        return v


class APIConfig(BaseSettings):
    """FastAPI server configuration."""

    model_config = {"env_prefix": "SILLCAM_API_"}

    enabled: bool = Field(
        default=_json_config.get("api", {}).get("enabled", True),
        description="Enable REST API server",
    )
    host: str = Field(
        default=_json_config.get("api", {}).get("host", "0.0.0.0"),
        description="API server bind host",
    )
    port: int = Field(
        default=_json_config.get("api", {}).get("port", 8080),
        description="API server port",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = {"env_prefix": "SILLCAM_LOGGING_"}

    level: str = Field(
        default=_json_config.get("logging", {}).get("level", "INFO"),
        description="Log level",
    )
    file: str = Field(
        default=_json_config.get("logging", {}).get(
            "file", str(RUNTIME_DIR / "logs" / "sillcam.log")
        ),
        description="Log file path",
    )


# Global configuration instances
bus_config = BusConfig()
camera_config = CameraConfig()
buffer_config = BufferConfig()
storage_config = StorageConfig()
api_config = APIConfig()
logging_config = LoggingConfig()


def setup_logging() -> None:
    """Configure logging for the application with log rotation."""
    from logging.handlers import RotatingFileHandler

    log_dir = Path(logging_config.file).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Use RotatingFileHandler to prevent disk fill (10MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        logging_config.file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, logging_config.level.upper()))
    root_logger.addHandler(file_handler)
    root_logger.addHandler(logging.StreamHandler())

    logger.info(
        f"Logging configured: level={logging_config.level}, "
        f"file={logging_config.file} (rotating, 10MB max, 5 backups)"
    )


def ensure_runtime_dirs() -> None:
    """Create runtime directories if they don't exist."""
    dirs = [
        Path(storage_config.output_format.format(0, ms=0)).parent,
        Path(logging_config.file).parent,
    ]
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {d}")
