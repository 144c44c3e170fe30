"""
==============================================================================
Product Schemas Module
==============================================================================

Request and response schemas for the product backlog.

Field names on the wire are camelCase (productName, retailPrice, ...);
Python attributes are snake_case.

Validation Rules:
----------------
- barcode: 8-14 characters
- productName: 1-200 characters
- retailPrice: decimal string with at most 2 decimals, greater than zero
- category: 1-100 characters
- unitOfMeasure: 1-20 characters

==============================================================================
"""

import re
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


PRICE_PATTERN = re.compile(r"^\d+(\.\d{1,2})?$")

# Suggested values offered by the data-entry form
CATEGORIES = [
    "Молочные продукты",
    "Кондитерские изделия",
    "Напитки",
    "Хлебобулочные изделия",
    "Мясные продукты",
    "Колбасные изделия",
    "Рыба и морепродукты",
    "Овощи и фрукты",
    "Бакалея",
    "Консервы",
    "Замороженные продукты",
    "Алкогольные напитки",
    "Товары для дома",
    "Косметика и гигиена",
    "Другое",
]

UNITS = ["шт.", "кг", "г", "л", "мл", "упак.", "м"]


class CamelModel(BaseModel):
    """Base model serializing to camelCase field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ProductCreate(CamelModel):
    """Product creation request."""
    barcode: str = Field(..., min_length=8, max_length=14)
    product_name: str = Field(..., min_length=1, max_length=200)
    retail_price: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    unit_of_measure: str = Field(..., min_length=1, max_length=20)

    @field_validator("retail_price")
    @classmethod
    def validate_price(cls, v: str) -> str:
        if not PRICE_PATTERN.match(v):
            raise ValueError("Price must be a number with at most 2 decimal places")
        if Decimal(v) <= 0:
            raise ValueError("Price must be greater than zero")
        return v

    @property
    def price(self) -> Decimal:
        """Price as a Decimal quantized to cents."""
        return Decimal(self.retail_price).quantize(Decimal("0.01"))


class ExportRecord(BaseModel):
    """Product fields included in CSV/JSON exports."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    barcode: str
    product_name: str
    retail_price: str
    category: str
    unit_of_measure: str


class ProductOptions(BaseModel):
    """Suggested categories and units for the data-entry form."""
    success: bool = Field(default=True)
    categories: List[str] = Field(default_factory=lambda: list(CATEGORIES))
    units: List[str] = Field(default_factory=lambda: list(UNITS))
