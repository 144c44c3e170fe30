"""
==============================================================================
Core Package
==============================================================================

Core utilities for the application.

Modules:
--------
- exceptions: AppException class and error factory functions

Usage:
------
    from shelfscan.core import exceptions
    raise exceptions.nothing_to_export()

==============================================================================
"""

from .exceptions import (
    AppException,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "register_exception_handlers",
]
