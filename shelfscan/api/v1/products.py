"""
==============================================================================
Product Backlog Endpoints
==============================================================================

Endpoints for appending products to the backlog, listing them and
exporting them as CSV or JSON.

==============================================================================
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from shelfscan.core import exceptions
from shelfscan.db.database import get_db
from shelfscan.schemas.product import ProductCreate, ProductOptions
from shelfscan.services.export_service import ProductExporter
from shelfscan.services.product_service import ProductService


router = APIRouter(prefix="/products", tags=["Products"])


class ProductController:
    """Controller for product backlog operations."""

    def __init__(self, db: Session):
        self._service = ProductService(db)
        self._exporter = ProductExporter()

    def list_products(self) -> list:
        """List stored products, newest first."""
        return [p.to_dict() for p in self._service.list_products()]

    def create_product(self, data: ProductCreate) -> dict:
        """Append a product to the backlog."""
        return self._service.create_product(data).to_dict()

    def export(self, fmt: str) -> Response:
        """Render all products as a downloadable file."""
        fmt = fmt.lower()
        if fmt not in ("csv", "json"):
            raise exceptions.unsupported_format(fmt)

        products = self._service.list_products()
        if not products:
            raise exceptions.nothing_to_export()

        filename = self._exporter.filename(fmt)
        return Response(
            content=self._exporter.render(products, fmt),
            media_type=self._exporter.media_type(fmt),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )


@router.get("")
async def list_products(db: Session = Depends(get_db)):
    """List all products, newest first."""
    controller = ProductController(db)
    return controller.list_products()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    """Validate and store a product record."""
    controller = ProductController(db)
    return controller.create_product(data)


@router.get("/export")
async def export_products(
    format: str = Query("csv", description="csv or json"),
    db: Session = Depends(get_db)
):
    """Download all products as CSV or JSON."""
    controller = ProductController(db)
    return controller.export(format)


@router.get("/options", response_model=ProductOptions)
async def get_options():
    """Suggested categories and units of measure for the entry form."""
    return ProductOptions()
