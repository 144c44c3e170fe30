"""
==============================================================================
Configuration Package
==============================================================================

Centralized configuration management using Pydantic Settings.

Usage:
------
    from shelfscan.config import get_settings

    settings = get_settings()
    print(settings.database_url)
    print(settings.scanner_frame_rate)

==============================================================================
"""

from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
