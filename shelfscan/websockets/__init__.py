"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for barcode capture.

Handlers:
---------
- capture: Live capture session (browser or server camera, manual entry)
- remote: Camera adapters that drive the browser over the socket

==============================================================================
"""

from .capture import router as capture_router

__all__ = ["capture_router"]
