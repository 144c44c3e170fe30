"""
==============================================================================
Scanner Package - Barcode Capture
==============================================================================

Barcode capture sessions with OpenCV and pyzbar.

Classes:
--------
- ScanSession: Capture state machine (one result per session)
- FrameDecoder: pyzbar decoding of OpenCV frames
- OpenCVCameraDecoder / OpenCVMediaPlatform: cameras attached to the server
- CaptureErrorKind / CaptureDeviceError: camera failure taxonomy

==============================================================================
"""

from .camera import OpenCVCameraDecoder, OpenCVMediaPlatform
from .decoder import FrameDecoder
from .errors import CaptureDeviceError, CaptureErrorKind, classify
from .interfaces import (
    CameraHandle,
    DecodeConfig,
    DecoderCapability,
    DeviceInfo,
    Feedback,
    MediaPlatform,
    MediaStream,
    MediaTrack,
    NullFeedback,
    ToneSpec,
)
from .session import ScanSession, SessionStatus

__all__ = [
    "CameraHandle",
    "CaptureDeviceError",
    "CaptureErrorKind",
    "DecodeConfig",
    "DecoderCapability",
    "DeviceInfo",
    "Feedback",
    "FrameDecoder",
    "MediaPlatform",
    "MediaStream",
    "MediaTrack",
    "NullFeedback",
    "OpenCVCameraDecoder",
    "OpenCVMediaPlatform",
    "ScanSession",
    "SessionStatus",
    "ToneSpec",
    "classify",
]
