"""
==============================================================================
Frame Decoder Module
==============================================================================

Barcode detection on video frames with OpenCV and pyzbar.

Frames are cropped to a centered decode region before decoding, which
both guides the user and keeps per-frame decode latency low.

    ┌───────────────────────────────┐
    │            frame              │
    │     ┌─────────────────┐       │
    │     │  decode region  │       │
    │     └─────────────────┘       │
    └───────────────────────────────┘

==============================================================================
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np
from pyzbar.pyzbar import decode


# Module logger
logger = logging.getLogger(__name__)


class FrameDecoder:
    """
    Decodes barcodes from OpenCV frames.

    Attributes:
        decode_region: (width, height) of the centered crop, or None for
            the whole frame

    Example:
        >>> decoder = FrameDecoder((280, 200))
        >>> decoder.decode_frame(frame)
        ['4607159730018']
    """

    def __init__(self, decode_region: Optional[Tuple[int, int]] = None) -> None:
        self.decode_region = decode_region

    def crop(self, frame: np.ndarray) -> np.ndarray:
        """
        Crop the centered decode region.

        The region is clamped to the frame size.
        """
        if self.decode_region is None:
            return frame

        height, width = frame.shape[:2]
        region_w = min(self.decode_region[0], width)
        region_h = min(self.decode_region[1], height)

        x = (width - region_w) // 2
        y = (height - region_h) // 2
        return frame[y:y + region_h, x:x + region_w]

    def decode_frame(self, frame: Optional[np.ndarray]) -> List[str]:
        """
        Decode all barcodes in a frame.

        Args:
            frame: OpenCV image (numpy array)

        Returns:
            Decoded strings in detection order, duplicates removed
        """
        if frame is None or frame.size == 0:
            return []

        try:
            barcodes = decode(self.crop(frame))
        except Exception as e:
            logger.error(f"Decode error: {e}")
            return []

        results: List[str] = []
        for barcode in barcodes:
            try:
                text = barcode.data.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug(f"Skipping non UTF-8 {barcode.type} payload")
                continue
            if text and text not in results:
                results.append(text)
        return results

    @staticmethod
    def image_from_base64(payload: str) -> Optional[np.ndarray]:
        """
        Decode a base64 encoded image (optionally a data URL).

        Returns:
            OpenCV image or None if the payload is not a readable image
        """
        if not payload:
            return None
        if payload.startswith("data:") and "," in payload:
            payload = payload.split(",", 1)[1]

        try:
            img_data = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            logger.debug(f"Invalid base64 frame: {e}")
            return None

        nparr = np.frombuffer(img_data, np.uint8)
        if nparr.size == 0:
            return None
        return cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    def decode_base64(self, payload: str) -> List[str]:
        """Decode barcodes from a base64 encoded image."""
        return self.decode_frame(self.image_from_base64(payload))
