"""
==============================================================================
Capture Error Taxonomy
==============================================================================

Every camera failure maps to one CaptureErrorKind with a fixed,
user-readable message. Platform adapters raise CaptureDeviceError carrying
the platform error name (the names used by browser media APIs), and
classify() converts any exception into a kind plus message.

    Error name                               → Kind
    ─────────────────────────────────────────────────────────────────
    NotAllowedError, PermissionDeniedError   → PERMISSION_DENIED
    NotFoundError, DevicesNotFoundError      → NO_DEVICE_FOUND
    NotReadableError, TrackStartError,
    TimeoutError                             → DEVICE_UNAVAILABLE
    OverconstrainedError                     → OVERCONSTRAINED_REQUEST
    NotSupportedError                        → UNSUPPORTED_CONTEXT
    anything else                            → UNKNOWN_START_FAILURE

==============================================================================
"""

from __future__ import annotations

import asyncio
import enum
from typing import Optional, Tuple


class CaptureErrorKind(str, enum.Enum):
    """Capture failure categories."""

    INSECURE_CONTEXT = "insecure_context"
    EMBEDDED_CONTEXT = "embedded_context"
    PERMISSION_DENIED = "permission_denied"
    NO_DEVICE_FOUND = "no_device_found"
    DEVICE_UNAVAILABLE = "device_unavailable"
    OVERCONSTRAINED_REQUEST = "overconstrained_request"
    UNSUPPORTED_CONTEXT = "unsupported_context"
    UNKNOWN_START_FAILURE = "unknown_start_failure"

    def __str__(self) -> str:
        return self.value


MESSAGES = {
    CaptureErrorKind.INSECURE_CONTEXT: (
        "The camera requires a secure (HTTPS) connection. "
        "Open the application over HTTPS or enter the barcode manually."
    ),
    CaptureErrorKind.EMBEDDED_CONTEXT: (
        "The camera may not work inside an embedded preview. "
        "Open the application in its own window or enter the barcode manually."
    ),
    CaptureErrorKind.PERMISSION_DENIED: (
        "Camera access is blocked. Allow camera access in the browser "
        "settings and reload the page."
    ),
    CaptureErrorKind.NO_DEVICE_FOUND: (
        "No camera was found. Make sure the device has a camera."
    ),
    CaptureErrorKind.DEVICE_UNAVAILABLE: (
        "The camera is in use by another application. Close other "
        "applications using the camera and try again."
    ),
    CaptureErrorKind.OVERCONSTRAINED_REQUEST: (
        "The camera does not support the requested settings."
    ),
    CaptureErrorKind.UNSUPPORTED_CONTEXT: (
        "The camera is not supported in this browser or requires HTTPS."
    ),
    CaptureErrorKind.UNKNOWN_START_FAILURE: "Failed to start the camera: {detail}",
}

ERROR_NAMES = {
    "NotAllowedError": CaptureErrorKind.PERMISSION_DENIED,
    "PermissionDeniedError": CaptureErrorKind.PERMISSION_DENIED,
    "NotFoundError": CaptureErrorKind.NO_DEVICE_FOUND,
    "DevicesNotFoundError": CaptureErrorKind.NO_DEVICE_FOUND,
    "NotReadableError": CaptureErrorKind.DEVICE_UNAVAILABLE,
    "TrackStartError": CaptureErrorKind.DEVICE_UNAVAILABLE,
    "TimeoutError": CaptureErrorKind.DEVICE_UNAVAILABLE,
    "OverconstrainedError": CaptureErrorKind.OVERCONSTRAINED_REQUEST,
    "NotSupportedError": CaptureErrorKind.UNSUPPORTED_CONTEXT,
}


class CaptureDeviceError(Exception):
    """
    A device access failure reported by a capture platform.

    Attributes:
        name: Platform error name, e.g. "NotAllowedError"
        message: Underlying error text
    """

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        self.message = message
        super().__init__(f"{name}: {message}" if message else name)


def message_for(kind: CaptureErrorKind, detail: Optional[str] = None) -> str:
    """Fixed user-facing message for a kind."""
    template = MESSAGES[kind]
    if kind is CaptureErrorKind.UNKNOWN_START_FAILURE:
        return template.format(detail=detail or "Unknown error")
    return template


def classify(error: BaseException) -> Tuple[CaptureErrorKind, str]:
    """
    Map an exception to a capture error kind and its message.

    Args:
        error: Exception raised while listing, opening or acquiring devices

    Returns:
        Tuple of (kind, user-facing message)
    """
    if isinstance(error, CaptureDeviceError):
        name = error.name
        detail = error.message or error.name
    elif isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        name = "TimeoutError"
        detail = str(error)
    else:
        name = type(error).__name__
        detail = str(error) or name

    kind = ERROR_NAMES.get(name, CaptureErrorKind.UNKNOWN_START_FAILURE)
    return kind, message_for(kind, detail)
