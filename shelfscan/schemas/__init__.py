"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

==============================================================================
"""

from .product import (
    CATEGORIES,
    UNITS,
    ExportRecord,
    ProductCreate,
    ProductOptions,
)

__all__ = [
    "CATEGORIES",
    "UNITS",
    "ExportRecord",
    "ProductCreate",
    "ProductOptions",
]
