"""
==============================================================================
SQLAlchemy ORM Models Module
==============================================================================

ORM model for the product backlog.

Database Schema:
---------------

    ┌─────────────────────────────────────────────────────────────────┐
    │                           products                               │
    ├─────────────────────────────────────────────────────────────────┤
    │ id (UUID string, PK)                                            │
    │ barcode (VARCHAR(14), NOT NULL, INDEX)                          │
    │ product_name (VARCHAR(200), NOT NULL)                           │
    │ retail_price (NUMERIC(10, 2), NOT NULL)                         │
    │ category (VARCHAR(100), NOT NULL)                               │
    │ unit_of_measure (VARCHAR(20), NOT NULL)                         │
    │ created_at (DATETIME, DEFAULT now, INDEX)                       │
    └─────────────────────────────────────────────────────────────────┘

Barcodes are not unique: the same product may be captured more than once
and every capture is kept in the backlog.

=============================================================================
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, Numeric, String

from shelfscan.db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Product(Base):
    """
    A scanned product record.

    Attributes:
        id: Unique identifier (UUID string)
        barcode: Scanned or manually entered barcode
        product_name: Display name of the product
        retail_price: Shelf price with two decimal places
        category: Product category
        unit_of_measure: Sales unit (e.g. "шт.", "кг")
        created_at: Creation timestamp (UTC)
    """

    __tablename__ = "products"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    barcode = Column(String(14), nullable=False, index=True)

    product_name = Column(String(200), nullable=False)

    retail_price = Column(Numeric(10, 2, asdecimal=True), nullable=False)

    category = Column(String(100), nullable=False)

    unit_of_measure = Column(String(20), nullable=False)

    created_at = Column(
        DateTime,
        nullable=False,
        default=_utcnow,
        index=True,
    )

    @property
    def retail_price_text(self) -> str:
        """Price rendered with exactly two decimals, e.g. "10.00"."""
        price = self.retail_price
        if price is None:
            return ""
        return f"{Decimal(str(price)).quantize(Decimal('0.01'))}"

    def to_dict(self) -> dict:
        """Serialize with the camelCase field names of the public API."""
        return {
            "id": self.id,
            "barcode": self.barcode,
            "productName": self.product_name,
            "retailPrice": self.retail_price_text,
            "category": self.category,
            "unitOfMeasure": self.unit_of_measure,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Product(id={self.id!r}, barcode={self.barcode!r})>"
