"""
==============================================================================
Database Initialization Module
==============================================================================

Database initialization and setup utilities.

Initialization Flow:
-------------------
1. Verify the database connection
2. Create all tables from ORM models
3. Log the number of stored products

Usage:
------
    from shelfscan.db import init_db

    init_db()

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Optional

from shelfscan.db.database import DatabaseManager
from shelfscan.db.models import Product


# Module logger
logger = logging.getLogger(__name__)


class DatabaseInitializer:
    """
    Database initialization manager.

    Example:
        >>> initializer = DatabaseInitializer()
        >>> initializer.initialize()
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None) -> None:
        self._db_manager = db_manager or DatabaseManager()

    def create_tables(self) -> None:
        """Create all database tables from ORM models (idempotent)."""
        logger.info("Creating database tables...")
        self._db_manager.create_tables()
        logger.info("✅ Database tables created successfully")

    def count_products(self) -> int:
        """Return the number of stored products."""
        with self._db_manager.session_scope() as session:
            return session.query(Product).count()

    def initialize(self) -> None:
        """
        Run the full initialization sequence.

        Raises:
            RuntimeError: If the database cannot be reached
        """
        if not self._db_manager.verify_connection():
            raise RuntimeError("Database connection failed")

        self.create_tables()
        logger.info(f"📦 Products in backlog: {self.count_products()}")


def init_db() -> None:
    """Initialize the database with the default manager."""
    DatabaseInitializer().initialize()
