"""
==============================================================================
Export Service Module
==============================================================================

CSV and JSON export of the product backlog.

CSV Format:
----------
- UTF-8 with byte-order mark (so spreadsheet tools detect the encoding)
- ';' field separator, '\\n' row separator
- Header: Barcode;Product Name;Retail Price;Category;Unit of Measure
- Product name is always quoted, embedded quotes doubled

JSON Format:
-----------
List of {barcode, productName, retailPrice, category, unitOfMeasure},
indented by two spaces, non-ASCII characters kept as-is.

==============================================================================
"""

from __future__ import annotations

import json
from datetime import date
from typing import Iterable, List, Optional

from shelfscan.db.models import Product
from shelfscan.schemas.product import ExportRecord


BOM = "\ufeff"
CSV_SEPARATOR = ";"
CSV_HEADERS = ["Barcode", "Product Name", "Retail Price", "Category", "Unit of Measure"]

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
}


class ProductExporter:
    """
    Renders products into downloadable export documents.

    Example:
        >>> exporter = ProductExporter()
        >>> content = exporter.render(products, "csv")
        >>> exporter.filename("csv")
        'products_2025-01-15.csv'
    """

    FORMATS = tuple(MEDIA_TYPES)

    @staticmethod
    def to_export_data(products: Iterable[Product]) -> List[ExportRecord]:
        return [
            ExportRecord(
                barcode=p.barcode,
                product_name=p.product_name,
                retail_price=p.retail_price_text,
                category=p.category,
                unit_of_measure=p.unit_of_measure,
            )
            for p in products
        ]

    @staticmethod
    def quote(value: str) -> str:
        """Wrap a text field in quotes, doubling embedded quotes."""
        return '"' + value.replace('"', '""') + '"'

    def to_csv(self, records: List[ExportRecord]) -> str:
        rows = [CSV_SEPARATOR.join(CSV_HEADERS)]
        for item in records:
            rows.append(CSV_SEPARATOR.join([
                item.barcode,
                self.quote(item.product_name),
                item.retail_price,
                item.category,
                item.unit_of_measure,
            ]))
        return BOM + "\n".join(rows)

    def to_json(self, records: List[ExportRecord]) -> str:
        data = [r.model_dump(by_alias=True) for r in records]
        return json.dumps(data, indent=2, ensure_ascii=False)

    def render(self, products: Iterable[Product], fmt: str) -> str:
        """
        Render products in the requested format.

        Raises:
            ValueError: If the format is not supported
        """
        records = self.to_export_data(products)
        if fmt == "csv":
            return self.to_csv(records)
        if fmt == "json":
            return self.to_json(records)
        raise ValueError(f"Unsupported export format: {fmt}")

    @staticmethod
    def filename(fmt: str, day: Optional[date] = None) -> str:
        day = day or date.today()
        return f"products_{day.isoformat()}.{fmt}"

    @staticmethod
    def media_type(fmt: str) -> str:
        return MEDIA_TYPES[fmt]
