"""
==============================================================================
Product Service Module
==============================================================================

Record store operations for the product backlog.

This module implements:
- ProductService: append a validated record, list records newest first

Both operations convert database failures into AppException so the API
layer answers with a structured 500 instead of a raw traceback.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shelfscan.core import exceptions
from shelfscan.db.models import Product
from shelfscan.schemas.product import ProductCreate


# Module logger
logger = logging.getLogger(__name__)


class ProductService:
    """
    Append-and-list persistence for scanned products.

    Attributes:
        _db: Database session

    Example:
        >>> service = ProductService(db_session)
        >>> product = service.create_product(ProductCreate(
        ...     barcode="4607159730018",
        ...     product_name="Milk 3.2%",
        ...     retail_price="89.90",
        ...     category="Молочные продукты",
        ...     unit_of_measure="шт.",
        ... ))
        >>> products = service.list_products()
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def list_products(self) -> List[Product]:
        """
        Get all products, newest first.

        Raises:
            AppException: PRODUCT_LIST_FAILED on database errors
        """
        try:
            return (
                self._db.query(Product)
                .order_by(Product.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error fetching products: {e}")
            raise exceptions.product_list_failed()

    def create_product(self, data: ProductCreate) -> Product:
        """
        Persist a validated product record.

        Args:
            data: Validated creation payload

        Returns:
            Created Product with id and created_at populated

        Raises:
            AppException: PRODUCT_CREATE_FAILED on database errors
        """
        product = Product(
            barcode=data.barcode,
            product_name=data.product_name,
            retail_price=data.price,
            category=data.category,
            unit_of_measure=data.unit_of_measure,
        )

        try:
            self._db.add(product)
            self._db.commit()
            self._db.refresh(product)
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.error(f"Error creating product: {e}")
            raise exceptions.product_create_failed()

        logger.info(f"✅ Product saved: {product.barcode} ({product.product_name})")
        return product
