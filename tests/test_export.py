"""
==============================================================================
Export Rendering Tests
==============================================================================
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from shelfscan.db.models import Product
from shelfscan.services.export_service import BOM, ProductExporter


@pytest.fixture
def exporter() -> ProductExporter:
    return ProductExporter()


@pytest.fixture
def products():
    return [
        Product(
            barcode="123",
            product_name='A"B',
            retail_price=Decimal("10.00"),
            category="X",
            unit_of_measure="шт.",
        )
    ]


class TestCsvExport:
    def test_quoted_row_with_header_and_bom(self, exporter, products):
        content = exporter.render(products, "csv")

        assert content.startswith(BOM)
        assert content[len(BOM):].split("\n") == [
            "Barcode;Product Name;Retail Price;Category;Unit of Measure",
            '123;"A""B";10.00;X;шт.',
        ]

    def test_rows_in_given_order(self, exporter):
        rows = [
            Product(barcode=str(i) * 8, product_name=f"P{i}", retail_price=Decimal(i),
                    category="C", unit_of_measure="кг")
            for i in (1, 2, 3)
        ]
        lines = exporter.render(rows, "csv").split("\n")
        assert [line.split(";")[0] for line in lines[1:]] == ["11111111", "22222222", "33333333"]
        assert lines[1].split(";")[2] == "1.00"

    def test_no_trailing_newline(self, exporter, products):
        assert not exporter.render(products, "csv").endswith("\n")


class TestJsonExport:
    def test_camel_case_fields(self, exporter, products):
        content = exporter.render(products, "json")
        assert json.loads(content) == [{
            "barcode": "123",
            "productName": 'A"B',
            "retailPrice": "10.00",
            "category": "X",
            "unitOfMeasure": "шт.",
        }]

    def test_non_ascii_kept_and_indented(self, exporter, products):
        content = exporter.render(products, "json")
        assert "шт." in content
        assert '\n  {' in content


class TestExportHelpers:
    def test_unsupported_format(self, exporter, products):
        with pytest.raises(ValueError):
            exporter.render(products, "xml")

    def test_filename(self, exporter):
        assert exporter.filename("csv", date(2025, 1, 15)) == "products_2025-01-15.csv"
        assert exporter.filename("json", date(2025, 1, 15)) == "products_2025-01-15.json"

    def test_media_type(self, exporter):
        assert exporter.media_type("csv").startswith("text/csv")
        assert exporter.media_type("json") == "application/json"
