"""
FlashGuard Configuration
========================

This module handles configuration loading for the flash detection service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    FLASHGUARD_RED_THRESHOLD        -> detection.red_threshold
    FLASHGUARD_FLASH_FREQUENCY      -> detection.flash_frequency
    FLASHGUARD_WARMUP_FRAMES        -> detection.warmup_frames
    FLASHGUARD_ANALYZE_EVERY        -> detection.analyze_every_n_frames
    FLASHGUARD_SEEK_REARM_SECONDS   -> policy.seek_rearm_seconds
    FLASHGUARD_STREAM_URL           -> stream.url (also enables the consumer)
    FLASHGUARD_STORAGE_DIR          -> persistence.directory
    FLASHGUARD_PORT                 -> server.port
    FLASHGUARD_LOG_LEVEL            -> logging.level
    PORT                            -> server.port (Cloud Run)

Example:
    from flash_guard.config import settings

    print(settings.detection.window_ms)
    print(settings.policy.seek_rearm_seconds)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="flash-guard", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class DetectionConfig(BaseModel):
    """Flash detection thresholds (WCAG 2.1 general and red flash limits)."""

    luminance_threshold: float = Field(
        default=0.2,
        gt=0,
        description="Relative luminance change that counts as a flash",
    )
    absolute_luminance_threshold: float = Field(
        default=0.1,
        ge=0,
        description="Absolute luminance change required alongside the relative one",
    )
    relative_floor: float = Field(
        default=0.01,
        gt=0,
        description="Denominator floor for relative luminance change",
    )
    red_threshold: float = Field(
        default=0.8,
        gt=0,
        le=1.0,
        description="Change in saturated-red ratio that counts as a red flash",
    )
    flash_frequency: int = Field(
        default=3,
        ge=1,
        description="Flashes within the window that trigger a warning",
    )
    window_ms: float = Field(
        default=1000.0,
        gt=0,
        description="Sliding detection window in milliseconds",
    )
    min_brightness: float = Field(
        default=0.05,
        ge=0,
        le=1.0,
        description="Frames at or below this luminance never produce flashes",
    )
    warmup_frames: int = Field(
        default=10,
        ge=0,
        description="Analyzed frames ignored at the start of each run",
    )
    analyze_every_n_frames: int = Field(
        default=3,
        ge=1,
        description="Analyze one of every N rendered frames",
    )
    pixel_stride: int = Field(
        default=4,
        ge=1,
        description="Sample every Nth pixel when computing frame signals",
    )


class PolicyConfig(BaseModel):
    """Warning re-arm policy."""

    seek_rearm_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Seeking below this position re-arms the warning",
    )
    play_rearm_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Playing from below this position re-arms the warning",
    )
    dedupe_warnings_per_video: bool = Field(
        default=False,
        description="Count warningsIssued at most once per video per session",
    )


class CaptureConfig(BaseModel):
    """Frame capture configuration."""

    max_width: int = Field(default=640, ge=1, description="Capped frame width")
    max_height: int = Field(default=360, ge=1, description="Capped frame height")

class StreamConfig(BaseModel):
    """Remote capture stream (WebSocket client) configuration."""

    enabled: bool = Field(default=False, description="Run the stream consumer")
    url: str = Field(
        default="ws://localhost:8000/ws/capture",
        description="WebSocket URL of the remote capture stream",
    )
    reconnect_backoff_ms: int = Field(
        default=500,
        ge=100,
        description="Backoff in milliseconds between reconnect attempts",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Maximum reconnection attempts (0 = unlimited)",
    )
    max_queue_size: int = Field(
        default=8,
        ge=1,
        description="Maximum pending frames per video before dropping the oldest",
    )


class PersistenceConfig(BaseModel):
    """Persistence channel configuration."""

    directory: str = Field(
        default="./data/storage",
        description="Directory holding the local and sync store files",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Write retries before a tier is marked degraded",
    )
    retry_backoff_ms: int = Field(
        default=100,
        ge=0,
        description="Initial retry backoff, doubled per attempt",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for FlashGuard.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Detection thresholds
    if env_red := os.environ.get("FLASHGUARD_RED_THRESHOLD"):
        config_data.setdefault("detection", {})["red_threshold"] = float(env_red)
    if env_freq := os.environ.get("FLASHGUARD_FLASH_FREQUENCY"):
        config_data.setdefault("detection", {})["flash_frequency"] = int(env_freq)
    if env_warmup := os.environ.get("FLASHGUARD_WARMUP_FRAMES"):
        config_data.setdefault("detection", {})["warmup_frames"] = int(env_warmup)
    if env_every := os.environ.get("FLASHGUARD_ANALYZE_EVERY"):
        config_data.setdefault("detection", {})["analyze_every_n_frames"] = int(env_every)

    # Policy
    if env_rearm := os.environ.get("FLASHGUARD_SEEK_REARM_SECONDS"):
        config_data.setdefault("policy", {})["seek_rearm_seconds"] = float(env_rearm)

    # Stream consumer
    if env_url := os.environ.get("FLASHGUARD_STREAM_URL"):
        stream = config_data.setdefault("stream", {})
        stream["url"] = env_url
        stream["enabled"] = True

    # Persistence
    if env_dir := os.environ.get("FLASHGUARD_STORAGE_DIR"):
        config_data.setdefault("persistence", {})["directory"] = env_dir

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("FLASHGUARD_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_log := os.environ.get("FLASHGUARD_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
