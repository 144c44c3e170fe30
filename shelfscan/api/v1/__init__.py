"""
==============================================================================
API v1 Endpoints
==============================================================================

Routers:
--------
- health: Health check endpoints
- products: Product backlog (list, create, export, form options)

==============================================================================
"""

from . import health, products

__all__ = ["health", "products"]
