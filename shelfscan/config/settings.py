"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

A single cached Settings instance is shared by the HTTP layer, the
record store and the capture sessions.

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        database_url: SQLAlchemy database connection string
        cors_origins: Allowed CORS origins (JSON array string)
        scanner_frame_rate: Frames per second requested from the camera
        scanner_region_width: Width of the decode region in pixels
        scanner_region_height: Height of the decode region in pixels
        scanner_aspect_ratio: Requested viewport aspect ratio
        scanner_back_camera_keywords: Label fragments marking a rear camera
        scanner_open_timeout_seconds: Bound for device listing/open/acquire
        scanner_client_open_timeout_seconds: Same bound for browser cameras,
            where it also covers the permission prompt
        scanner_stop_timeout_seconds: Bound for stopping a camera handle
        scanner_max_local_devices: Device indexes probed on the server
        default_capture_source: "client" (browser camera) or "server"
        feedback_tone_frequency: Success tone frequency in Hz
        feedback_tone_duration: Success tone duration in seconds
        feedback_tone_volume: Success tone gain (0-1)
        feedback_vibrate_ms: Haptic pulse duration in milliseconds
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True,
    )

    # =========================================================================
    # APPLICATION SETTINGS
    # =========================================================================
    app_name: str = Field(
        default="Shelf Scan Backlog",
        description="Display name for the application"
    )

    app_env: str = Field(
        default="development",
        description="Environment mode: development, staging, production"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode for verbose logging"
    )

    # =========================================================================
    # SERVER SETTINGS
    # =========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address"
    )

    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port number"
    )

    # =========================================================================
    # DATABASE SETTINGS
    # =========================================================================
    database_url: str = Field(
        default="sqlite:///./storage/db/products.db",
        description="SQLAlchemy database connection string"
    )

    # =========================================================================
    # CORS SETTINGS
    # =========================================================================
    cors_origins: str = Field(
        default='["*"]',
        description="Allowed CORS origins as JSON array string"
    )

    # =========================================================================
    # SCANNER SETTINGS
    # =========================================================================
    scanner_frame_rate: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Frames per second requested from the camera"
    )

    scanner_region_width: int = Field(
        default=280,
        ge=50,
        description="Width of the decode region in pixels"
    )

    scanner_region_height: int = Field(
        default=200,
        ge=50,
        description="Height of the decode region in pixels"
    )

    scanner_aspect_ratio: float = Field(
        default=1.4,
        gt=0,
        description="Requested viewport aspect ratio"
    )

    scanner_back_camera_keywords: str = Field(
        default='["back"]',
        description="Label fragments marking a rear camera (JSON array string)"
    )

    scanner_open_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for device listing, open and stream acquisition"
    )

    scanner_client_open_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Timeout for browser device access, including the permission prompt"
    )

    scanner_stop_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Timeout for stopping a camera handle"
    )

    scanner_max_local_devices: int = Field(
        default=4,
        ge=1,
        le=16,
        description="Number of device indexes probed for server cameras"
    )

    default_capture_source: str = Field(
        default="client",
        description="Camera owner when the client does not say: client or server"
    )

    # =========================================================================
    # FEEDBACK SETTINGS
    # =========================================================================
    feedback_tone_frequency: int = Field(
        default=1000,
        ge=20,
        le=20000,
        description="Success tone frequency in Hz"
    )

    feedback_tone_duration: float = Field(
        default=0.1,
        gt=0,
        le=2,
        description="Success tone duration in seconds"
    )

    feedback_tone_volume: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Success tone gain"
    )

    feedback_vibrate_ms: int = Field(
        default=200,
        ge=0,
        le=2000,
        description="Haptic pulse duration in milliseconds"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """Normalize the environment name, defaulting to development."""
        valid_envs = {"development", "staging", "production"}
        normalized = value.lower().strip()

        if normalized not in valid_envs:
            logger.warning(
                f"Unknown environment '{value}', defaulting to 'development'"
            )
            return "development"

        return normalized

    @field_validator("default_capture_source")
    @classmethod
    def validate_capture_source(cls, value: str) -> str:
        """
        Validate the default camera owner.

        Raises:
            ValueError: If the source is neither client nor server
        """
        normalized = value.lower().strip()
        if normalized not in {"client", "server"}:
            raise ValueError(
                f"Unsupported capture source: {value}. Supported: client, server"
            )
        return normalized

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def is_production(self) -> bool:
        """Production hides the interactive API docs."""
        return self.app_env == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        return self._parse_list(self.cors_origins, ["*"], "CORS origins")

    @property
    def back_camera_keywords(self) -> List[str]:
        """Lower-cased label fragments that identify a rear camera."""
        keywords = self._parse_list(
            self.scanner_back_camera_keywords, ["back"], "back camera keywords"
        )
        return [str(k).lower() for k in keywords if str(k).strip()]

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================
    @staticmethod
    def _parse_list(raw: str, default: List[str], label: str) -> List[str]:
        try:
            value = json.loads(raw)
            if isinstance(value, list):
                return value
            return default
        except json.JSONDecodeError:
            logger.warning(f"Invalid {label} JSON: {raw}, defaulting to {default}")
            return default

    def get_database_path(self) -> Optional[Path]:
        """
        Extract database file path for SQLite databases.

        Returns:
            Path to database file, or None for non-SQLite or in-memory databases
        """
        if not self.database_url.startswith("sqlite:///"):
            return None
        db_path = self.database_url.replace("sqlite:///", "")
        if db_path.startswith("./"):
            db_path = db_path[2:]
        if not db_path or db_path == ":memory:":
            return None
        return Path(db_path)

    def ensure_directories(self) -> None:
        """Create the SQLite database directory if needed."""
        db_path = self.get_database_path()
        if db_path:
            db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.debug("Required directories created/verified")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    Returns:
        Global Settings instance
    """
    settings = Settings()
    settings.ensure_directories()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
