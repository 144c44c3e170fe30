"""
==============================================================================
Services Package - Business Logic Layer
==============================================================================

Service classes between the API endpoints and the database layer.

    ┌─────────────────┐
    │   API Router    │
    └────────┬────────┘
             │
    ┌────────▼────────┐
    │    Service      │  ← Business Logic
    └────────┬────────┘
             │
    ┌────────▼────────┐
    │   ORM Models    │  ← Data Access
    └─────────────────┘

This package provides:
- ProductService: append and list backlog records
- ProductExporter: CSV/JSON export rendering

==============================================================================
"""

from .product_service import ProductService
from .export_service import ProductExporter

__all__ = [
    "ProductService",
    "ProductExporter",
]
