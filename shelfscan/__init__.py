"""
Shelf Scan Backlog - barcode capture and product backlog service.
"""

__version__ = "1.0.0"
