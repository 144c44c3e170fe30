"""
Application Exception Handling

Single AppException class for all service errors with FastAPI integration.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Unified application exception for all error scenarios.

    Provides consistent error response format across the entire API.

    Usage:
        raise AppException("Nothing to export", "NOTHING_TO_EXPORT", 400)
        raise validation_error([{"path": "barcode", "message": "..."}])

    Error Codes:
        Products:
            - VALIDATION_ERROR (400)
            - NOTHING_TO_EXPORT (400)
            - UNSUPPORTED_FORMAT (400)
            - PRODUCT_CREATE_FAILED (500)
            - PRODUCT_LIST_FAILED (500)

        General:
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "VALIDATION_ERROR")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert AppException to consistent JSON error response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Report body validation failures as 400 with field-level errors."""
    fields = field_errors(exc.errors())
    logger.info(f"Validation failed for {request.url.path}: {fields}")
    return await app_exception_handler(request, validation_error(fields))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler so unexpected failures keep the error format."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return await app_exception_handler(request, internal_error())


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def field_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic error entries into {path, message} pairs.

    The leading "body" location element added by FastAPI is dropped.
    """
    result = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] == "body":
            loc = loc[1:]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        result.append({"path": ".".join(loc), "message": message})
    return result


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def validation_error(fields: List[Dict[str, str]]) -> AppException:
    """Create record validation exception."""
    return AppException(
        "Product data failed validation",
        "VALIDATION_ERROR",
        400,
        {"fields": fields}
    )


def nothing_to_export() -> AppException:
    """Create empty export exception."""
    return AppException(
        "Add products before exporting",
        "NOTHING_TO_EXPORT",
        400
    )


def unsupported_format(fmt: str) -> AppException:
    """Create unsupported export format exception."""
    return AppException(
        f"Unsupported export format: {fmt}",
        "UNSUPPORTED_FORMAT",
        400,
        {"format": fmt, "supported": ["csv", "json"]}
    )


def product_create_failed() -> AppException:
    """Create product persistence failure exception."""
    return AppException("Failed to create product", "PRODUCT_CREATE_FAILED", 500)


def product_list_failed() -> AppException:
    """Create product listing failure exception."""
    return AppException("Failed to load products", "PRODUCT_LIST_FAILED", 500)


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
