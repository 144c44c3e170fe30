"""
==============================================================================
Server Camera Module
==============================================================================

Decoder capability and media platform for cameras attached to the machine
running the service (kiosk setups), using OpenCV VideoCapture.

Frame reads and decoding run in worker threads; decode callbacks are
awaited on the event loop. A per-handle lock serializes frame reads and
the final release so a capture is never released mid-read.

The raw "stream" of this platform is a view over the capture already held
by the decode handle: opening a second VideoCapture on the same device
fails on most systems, and OpenCV exposes the capture properties on the
same object.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2

from shelfscan.scanner.decoder import FrameDecoder
from shelfscan.scanner.errors import CaptureDeviceError
from shelfscan.scanner.interfaces import (
    CameraHandle,
    DecodeCallback,
    DecodeConfig,
    DecoderCapability,
    DeviceInfo,
    MediaPlatform,
    MediaStream,
    MediaTrack,
)


# Module logger
logger = logging.getLogger(__name__)

SYSFS_VIDEO = Path("/sys/class/video4linux")

# Consecutive failed reads before the read loop gives up
MAX_READ_FAILURES = 30


@dataclass
class LocalCameraHandle(CameraHandle):
    """Handle over an OpenCV VideoCapture."""
    capture: Any = None
    task: Optional[asyncio.Task] = None
    in_callback: bool = False
    io_lock: threading.Lock = field(default_factory=threading.Lock)


class OpenCVCameraDecoder(DecoderCapability):
    """
    Reads frames from local cameras and decodes them with pyzbar.

    Device ids are OpenCV device indexes as strings ("0", "1", ...).

    Example:
        >>> decoder = OpenCVCameraDecoder(max_devices=2)
        >>> devices = await decoder.list_devices()
        >>> handle = await decoder.open(devices[0].id, DecodeConfig(), on_decode)
        >>> await decoder.stop(handle)
    """

    def __init__(self, max_devices: int = 4, sysfs_root: Path = SYSFS_VIDEO) -> None:
        self._max_devices = max_devices
        self._sysfs_root = sysfs_root
        self._active: Dict[str, LocalCameraHandle] = {}

    # =========================================================================
    # DEVICE ENUMERATION
    # =========================================================================

    def device_label(self, index: int) -> str:
        """Human-readable name from sysfs, falling back to "Camera N"."""
        name_file = self._sysfs_root / f"video{index}" / "name"
        try:
            name = name_file.read_text(encoding="utf-8").strip()
        except OSError:
            name = ""
        return name or f"Camera {index}"

    def _probe(self) -> List[DeviceInfo]:
        devices = []
        for index in range(self._max_devices):
            device_id = str(index)
            if device_id in self._active:
                devices.append(DeviceInfo(device_id, self.device_label(index)))
                continue

            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    devices.append(DeviceInfo(device_id, self.device_label(index)))
            finally:
                capture.release()
        return devices

    async def list_devices(self) -> List[DeviceInfo]:
        devices = await asyncio.to_thread(self._probe)
        logger.debug(f"Local cameras: {[d.to_dict() for d in devices]}")
        return devices

    def active_handle(self, device_id: str) -> Optional[LocalCameraHandle]:
        return self._active.get(device_id)

    # =========================================================================
    # STREAM LIFECYCLE
    # =========================================================================

    @staticmethod
    def _open_capture(index: int, config: DecodeConfig):
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CaptureDeviceError(
                "NotReadableError", f"Could not open camera {index}"
            )
        capture.set(cv2.CAP_PROP_FPS, config.frame_rate)
        return capture

    @staticmethod
    def _release_orphan(future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        future.result().release()
        logger.info("Released camera opened after its session gave up")

    async def open(
        self,
        device_id: str,
        config: DecodeConfig,
        on_decode: DecodeCallback,
    ) -> LocalCameraHandle:
        try:
            index = int(device_id)
        except ValueError:
            raise CaptureDeviceError("NotFoundError", f"Unknown camera id: {device_id}")

        if device_id in self._active:
            raise CaptureDeviceError("NotReadableError", f"Camera {device_id} is already in use")

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._open_capture, index, config)
        try:
            capture = await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(self._release_orphan)
            raise

        handle = LocalCameraHandle(device_id=device_id, config=config, capture=capture)
        self._active[device_id] = handle
        handle.task = asyncio.create_task(self._read_loop(handle, on_decode))
        logger.info(f"📷 Local camera {device_id} opened at {config.frame_rate} fps")
        return handle

    @staticmethod
    def _grab(handle: LocalCameraHandle, decoder: FrameDecoder) -> Optional[List[str]]:
        with handle.io_lock:
            if handle.stopped:
                return None
            ok, frame = handle.capture.read()
        if not ok:
            return None
        return decoder.decode_frame(frame)

    async def _read_loop(self, handle: LocalCameraHandle, on_decode: DecodeCallback) -> None:
        decoder = FrameDecoder(handle.config.decode_region)
        interval = 1.0 / max(handle.config.frame_rate, 1)
        failures = 0

        while not handle.stopped:
            texts = await asyncio.to_thread(self._grab, handle, decoder)
            if texts is None:
                if handle.stopped:
                    break
                failures += 1
                if failures >= MAX_READ_FAILURES:
                    logger.warning(f"Camera {handle.device_id}: too many failed reads, stopping")
                    await self._report_failure(handle)
                    return
            else:
                failures = 0
                for text in texts:
                    if handle.stopped:
                        break
                    handle.in_callback = True
                    try:
                        await on_decode(text)
                    except Exception as e:
                        logger.error(f"Decode callback error: {e!r}")
                    finally:
                        handle.in_callback = False

            await asyncio.sleep(interval)

    async def _report_failure(self, handle: LocalCameraHandle) -> None:
        """Tell the owner the stream died, then release the device."""
        error = CaptureDeviceError(
            "NotReadableError", f"Camera {handle.device_id} stopped delivering frames"
        )
        handle.in_callback = True
        try:
            if handle.on_error is not None:
                await handle.on_error(error)
            await self.stop(handle)
        except Exception as e:
            logger.error(f"Error handling camera failure: {e!r}")
        finally:
            handle.in_callback = False

    @staticmethod
    def _release_capture(handle: LocalCameraHandle) -> None:
        with handle.io_lock:
            if handle.capture is not None:
                handle.capture.release()
                handle.capture = None

    async def stop(self, handle: CameraHandle) -> None:
        if not isinstance(handle, LocalCameraHandle) or handle.stopped:
            return

        handle.stopped = True
        self._active.pop(handle.device_id, None)

        task = handle.task
        # From inside a read loop callback the loop exits on its own
        if task is not None and not handle.in_callback and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await asyncio.to_thread(self._release_capture, handle)
        logger.info(f"Local camera {handle.device_id} released")


class LocalVideoTrack(MediaTrack):
    """Capability view over a local camera handle."""

    kind = "video"

    def __init__(self, handle: LocalCameraHandle) -> None:
        self._handle = handle
        self.ended = False

    def capabilities(self) -> Dict[str, Any]:
        capture = self._handle.capture
        if capture is None:
            return {"torch": False}
        return {
            "torch": False,
            "width": int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "frame_rate": capture.get(cv2.CAP_PROP_FPS),
        }

    async def apply_constraints(self, constraints: Dict[str, Any]) -> None:
        if "torch" in constraints:
            raise CaptureDeviceError(
                "OverconstrainedError", "Torch is not supported by this camera"
            )

    async def stop(self) -> None:
        self.ended = True


class LocalMediaStream(MediaStream):
    def __init__(self, tracks: List[MediaTrack]) -> None:
        self._tracks = tracks

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)


class OpenCVMediaPlatform(MediaPlatform):
    """
    Platform for server cameras.

    The service process talks to the device directly, so the browser
    context checks do not apply.
    """

    def __init__(self, decoder: OpenCVCameraDecoder) -> None:
        self._decoder = decoder

    @property
    def is_secure_context(self) -> bool:
        return True

    @property
    def is_embedded(self) -> bool:
        return False

    async def acquire_stream(self, constraints: Dict[str, Any]) -> MediaStream:
        device_id = str(constraints.get("video", {}).get("device_id", ""))
        handle = self._decoder.active_handle(device_id)
        if handle is None:
            raise CaptureDeviceError("NotFoundError", f"Camera {device_id} is not open")
        return LocalMediaStream([LocalVideoTrack(handle)])
