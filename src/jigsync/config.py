"""Centralized configuration management for jigsync.

Reads from environment variables with sensible defaults.
The server, the CLI and the tests all go through this module.

Environment variables follow the pattern JIGSYNC_*.

Example:
    >>> from jigsync.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.placement_tolerance)
    20.0
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value: str) -> bool:
    """Parse boolean from environment variable string."""
    return value.lower() in ("true", "1", "yes", "on")


def _getenv_int(key: str, default: int) -> int:
    """Get integer from environment with fallback to default."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        log.warning(f"Invalid integer value for {key}={value}, using default {default}")
        return default


def _getenv_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        log.warning(f"Invalid float value for {key}={value}, using default {default}")
        return default


@dataclass
class Settings:
    """jigsync configuration loaded from environment variables.

    All fields have defaults that work for local development.
    Production deployments should override via environment variables.

    Attributes
    ----------
    database_url : str
        SQLAlchemy async URL of the persistence substrate.
    redis_url : str | None
        Redis URL for the Socket.IO pub/sub manager. None keeps fan-out
        inside a single process.
    media_path : Path
        Directory the filesystem object store writes uploads to.
    media_url : str
        Public URL prefix under which ``media_path`` is served.
    auth_secret : str
        HS256 secret shared with the identity provider. MUST change in
        production!
    token_ttl_seconds : int
        Lifetime of development tokens minted by the CLI.
    placement_tolerance : float
        Maximum distance from home still counted as placed.
    max_upload_mb : int
        Maximum accepted image size in megabytes.
    host : str
        Server bind host address.
    port : int
        Server bind port number.
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    init_db_on_startup : bool
        Create missing tables when the server starts.
    """

    # Persistence and fan-out
    database_url: str = field(
        default_factory=lambda: os.getenv(
            "JIGSYNC_DATABASE_URL", "sqlite+aiosqlite:///./jigsync.db"
        )
    )
    redis_url: str | None = field(
        default_factory=lambda: os.getenv("JIGSYNC_REDIS_URL")
    )
    init_db_on_startup: bool = field(
        default_factory=lambda: _parse_bool(
            os.getenv("JIGSYNC_INIT_DB_ON_STARTUP", "true")
        )
    )

    # Uploads
    media_path: Path = field(
        default_factory=lambda: Path(os.getenv("JIGSYNC_MEDIA_PATH", "./jigsync-media"))
    )
    media_url: str = field(
        default_factory=lambda: os.getenv("JIGSYNC_MEDIA_URL", "/media")
    )
    max_upload_mb: int = field(
        default_factory=lambda: _getenv_int("JIGSYNC_MAX_UPLOAD_MB", 10)
    )

    # Security
    auth_secret: str = field(
        default_factory=lambda: os.getenv(
            "JIGSYNC_AUTH_SECRET", "dev-secret-change-in-production"
        ),
        repr=False,
    )
    token_ttl_seconds: int = field(
        default_factory=lambda: _getenv_int("JIGSYNC_TOKEN_TTL_SECONDS", 7 * 24 * 3600)
    )

    # Puzzle
    placement_tolerance: float = field(
        default_factory=lambda: _getenv_float("JIGSYNC_PLACEMENT_TOLERANCE", 20.0)
    )

    # Server
    host: str = field(default_factory=lambda: os.getenv("JIGSYNC_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _getenv_int("JIGSYNC_PORT", 8000))
    log_level: str = field(
        default_factory=lambda: os.getenv("JIGSYNC_LOG_LEVEL", "WARNING")
    )

    def __post_init__(self):
        self.media_path = Path(self.media_path)
        self._validate()

    def _validate(self):
        """Validate configuration values.

        Raises
        ------
        ValueError
            If configuration is invalid.
        """
        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"Invalid port number: {self.port}. Must be between 1 and 65535"
            )

        if self.max_upload_mb < 1:
            raise ValueError(
                f"Invalid max upload size: {self.max_upload_mb}MB. Must be at least 1MB"
            )

        if self.token_ttl_seconds < 1:
            raise ValueError(
                f"Invalid token lifetime: {self.token_ttl_seconds}s. Must be positive"
            )

        if self.placement_tolerance < 0:
            raise ValueError(
                f"Invalid placement tolerance: {self.placement_tolerance}. "
                "Must not be negative"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            log.warning(
                f"Invalid log level '{self.log_level}', using WARNING. "
                f"Valid levels: {', '.join(VALID_LOG_LEVELS)}"
            )
            self.log_level = "WARNING"
        self.log_level = self.log_level.upper()

        self.media_url = self.media_url.rstrip("/") or "/"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    def log_summary(self):
        """Log configuration for debugging (excludes sensitive data)."""
        log.info("=" * 80)
        log.info("jigsync Configuration:")
        log.info(f"  Database: {self.database_url}")
        log.info(f"  Redis URL: {self.redis_url or 'None (single process)'}")
        log.info(f"  Media: {self.media_path} -> {self.media_url}")
        log.info(f"  Placement Tolerance: {self.placement_tolerance}")
        log.info(f"  Max Upload: {self.max_upload_mb}MB")
        log.info(f"  Log Level: {self.log_level}")
        log.info("=" * 80)


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Returns
    -------
    Settings
        Global settings instance loaded from environment variables.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment.

    Useful for testing or when environment variables change at runtime.
    """
    global _settings
    _settings = Settings()
    return _settings
