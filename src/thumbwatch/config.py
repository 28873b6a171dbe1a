"""
Thumbwatch Configuration
========================

This module handles configuration loading for the thumbnail health service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    SPACES_ENDPOINT              -> storage.endpoint_url
    SPACES_BUCKET                -> storage.bucket
    SPACES_REGION                -> storage.region
    DO_SPACES_KEY                -> storage.access_key
    DO_SPACES_SECRET             -> storage.secret_key
    THUMBWATCH_STORAGE_BACKEND   -> storage.backend
    THUMBWATCH_ALERT_WEBHOOK_URL -> alerts.webhook_url
    THUMBWATCH_BLACK_POLICY      -> classifier.black_policy
    THUMBWATCH_LUMA_THRESHOLD    -> classifier.luma_threshold
    THUMBWATCH_FREEZE_TTL        -> freeze.idle_ttl_seconds
    THUMBWATCH_INCLUDE_QUALITY   -> archive.include_quality
    THUMBWATCH_LOG_LEVEL         -> logging.level
    PORT / THUMBWATCH_PORT       -> server.port

Example:
    from thumbwatch.config import settings

    print(settings.storage.bucket)
    print(settings.classifier.luma_threshold)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification."""

    name: str = Field(default="thumbwatch", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")
    max_body_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Maximum accepted request body size",
    )
    ws_push_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval between health board pushes on /ws/health",
    )


class ClassifierConfig(BaseModel):
    """Frame classification thresholds."""

    black_policy: Literal["mean_luma", "pixel_ratio"] = Field(
        default="mean_luma",
        description="Black frame policy: 'mean_luma' or 'pixel_ratio'",
    )
    luma_threshold: float = Field(
        default=16.0,
        ge=0,
        le=255,
        description="Mean luminance below which a frame is black (mean_luma)",
    )
    pixel_cutoff: int = Field(
        default=16,
        ge=0,
        le=255,
        description="Channel value at or below which a pixel counts as black (pixel_ratio)",
    )
    black_ratio_threshold: float = Field(
        default=0.9,
        gt=0,
        le=1.0,
        description="Fraction of black pixels at which a frame is black (pixel_ratio)",
    )
    hash_size: int = Field(
        default=8,
        ge=4,
        le=16,
        description="Side of the DCT block kept for the perceptual hash",
    )
    highfreq_factor: int = Field(
        default=4,
        ge=1,
        le=8,
        description="Oversampling factor before the DCT",
    )


class FreezeConfig(BaseModel):
    """Freeze matching and state retention."""

    idle_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Evict freeze state for keys idle longer than this",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval between eviction sweeps",
    )
    match_distance: int = Field(
        default=0,
        ge=0,
        le=64,
        description="Max fingerprint Hamming distance still treated as a repeated frame",
    )


class StorageConfig(BaseModel):
    """Object storage configuration."""

    backend: Literal["s3", "memory"] = Field(
        default="s3",
        description="Storage backend: 's3' or 'memory'",
    )
    endpoint_url: str = Field(
        default="https://lon1.digitaloceanspaces.com",
        description="S3-compatible endpoint",
    )
    bucket: str = Field(default="quantumstream", description="Bucket name")
    region: str = Field(default="lon1", description="Bucket region")
    access_key: Optional[str] = Field(default=None, description="Access key id")
    secret_key: Optional[str] = Field(default=None, description="Secret access key")
    public_url_base: Optional[str] = Field(
        default=None,
        description="Base URL for public object links (derived from bucket/region if unset)",
    )
    public_read: bool = Field(default=True, description="Upload frames with public-read ACL")

    @property
    def resolved_public_url_base(self) -> str:
        if self.public_url_base:
            return self.public_url_base.rstrip("/")
        return f"https://{self.bucket}.{self.region}.digitaloceanspaces.com"


class ArchiveConfig(BaseModel):
    """Archive layout configuration."""

    include_quality: bool = Field(
        default=False,
        description="Include the quality tier as a key segment",
    )
    log_prefix: str = Field(default="logs", description="Prefix for daily log objects")
    log_max_retries: int = Field(
        default=5,
        ge=1,
        description="Conditional write attempts for a daily log append",
    )


class AlertsConfig(BaseModel):
    """Alert webhook configuration."""

    webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook endpoint (alerting disabled if unset)",
    )
    timeout_seconds: float = Field(default=5.0, gt=0, description="Per-request timeout")
    max_queue_size: int = Field(default=100, ge=1, description="Pending alert capacity")
    max_attempts: int = Field(default=3, ge=1, description="Delivery attempts per alert")
    backoff_base_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Base delay for exponential retry backoff",
    )
    breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failed deliveries before the breaker opens",
    )
    breaker_reset_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Time the breaker stays open",
    )


class MetricsConfig(BaseModel):
    """Metrics exposition configuration."""

    include_process_metrics: bool = Field(
        default=True,
        description="Register process/platform collectors alongside frame metrics",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for Thumbwatch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    freeze: FreezeConfig = Field(default_factory=FreezeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
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
        config_path: Path to config.yaml. If None, uses THUMBWATCH_CONFIG
            or searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("THUMBWATCH_CONFIG")

    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
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


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Storage settings (names kept compatible with existing Spaces deployments)
    if env_endpoint := os.environ.get("SPACES_ENDPOINT"):
        config_data.setdefault("storage", {})["endpoint_url"] = env_endpoint
    if env_bucket := os.environ.get("SPACES_BUCKET"):
        config_data.setdefault("storage", {})["bucket"] = env_bucket
    if env_region := os.environ.get("SPACES_REGION"):
        config_data.setdefault("storage", {})["region"] = env_region
    if env_key := os.environ.get("DO_SPACES_KEY"):
        config_data.setdefault("storage", {})["access_key"] = env_key
    if env_secret := os.environ.get("DO_SPACES_SECRET"):
        config_data.setdefault("storage", {})["secret_key"] = env_secret
    if env_backend := os.environ.get("THUMBWATCH_STORAGE_BACKEND"):
        config_data.setdefault("storage", {})["backend"] = env_backend

    # Alerts
    if env_hook := os.environ.get("THUMBWATCH_ALERT_WEBHOOK_URL"):
        config_data.setdefault("alerts", {})["webhook_url"] = env_hook

    # Classifier
    if env_policy := os.environ.get("THUMBWATCH_BLACK_POLICY"):
        config_data.setdefault("classifier", {})["black_policy"] = env_policy
    if env_luma := os.environ.get("THUMBWATCH_LUMA_THRESHOLD"):
        config_data.setdefault("classifier", {})["luma_threshold"] = float(env_luma)

    # Freeze state
    if env_ttl := os.environ.get("THUMBWATCH_FREEZE_TTL"):
        config_data.setdefault("freeze", {})["idle_ttl_seconds"] = float(env_ttl)

    # Archive layout
    if env_quality := os.environ.get("THUMBWATCH_INCLUDE_QUALITY"):
        config_data.setdefault("archive", {})["include_quality"] = _env_flag(env_quality)

    # Server settings (PaaS platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("THUMBWATCH_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("THUMBWATCH_LOG_LEVEL"):
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

    # Storage and webhook clients log every request
    for name in ("botocore", "boto3", "urllib3", "httpx"):
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
