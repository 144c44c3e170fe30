"""
==============================================================================
Capture Session Module
==============================================================================

State machine acquiring exactly one barcode per session, from a live
camera decode or from manual keyboard entry.

State Machine:
-------------

    ┌──────┐ open() ┌──────────┐ device open ┌──────────┐ decode  ┌───────────┐
    │ IDLE │ ─────▶ │ STARTING │ ──────────▶ │ SCANNING │ ──────▶ │ SUCCEEDED │
    └──────┘        └──────────┘             └──────────┘         └───────────┘
                      │      │                  │                      ▲
         precondition │      │ manual           │ manual               │ submit
         / device     ▼      ▼                  ▼                      │
         error   ┌────────┐ manual   ┌──────────────┐ ─────────────────┘
                 │ FAILED │ ───────▶ │ MANUAL_ENTRY │
                 └────────┘ ◀─────── └──────────────┘
                            cancel        │ cancel (no prior error)
                            (had error)   └──────▶ STARTING

    Every state ──close()──▶ CLOSED (terminal)

Guarantees:
----------
- At most one result is emitted per session (has_emitted_result).
- Decode callbacks are accepted only while the status is exactly
  SCANNING; anything arriving later is discarded.
- The camera handle and raw stream are released on every exit from
  SCANNING, exactly once; stop failures are logged and non-fatal.
- Device failures never propagate: they become FAILED plus a message,
  including a stream that dies while SCANNING (handle.on_error).

==============================================================================
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from shelfscan.scanner.errors import CaptureErrorKind, classify, message_for
from shelfscan.scanner.interfaces import (
    CameraHandle,
    DecodeConfig,
    DecoderCapability,
    DeviceInfo,
    Feedback,
    MediaPlatform,
    MediaStream,
    NullFeedback,
    OnClose,
    OnScanSuccess,
    ToneSpec,
)


# Module logger
logger = logging.getLogger(__name__)


class SessionStatus(str, enum.Enum):
    """Capture session states."""

    IDLE = "idle"
    STARTING = "starting"
    SCANNING = "scanning"
    SUCCEEDED = "succeeded"
    MANUAL_ENTRY = "manual_entry"
    FAILED = "failed"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ScanSession:
    """
    One barcode capture attempt.

    The session exclusively owns its camera handle and raw media stream;
    collaborators only reach them through the session's methods.

    Attributes:
        status: Current SessionStatus
        has_torch: Torch capability detected on the active stream
        torch_on: Torch currently lit
        torch_error: Message of the last failed torch toggle
        error: CaptureErrorKind of the failure, if any
        error_message: User-facing message for the failure
        has_emitted_result: A result has been handed to on_scan_success
        manual_input: Current manual entry text
        device: Selected capture device

    Example:
        >>> async with ScanSession(decoder, platform, on_scan_success) as session:
        ...     await session.open()
        ...     ...
    """

    def __init__(
        self,
        decoder: DecoderCapability,
        platform: MediaPlatform,
        on_scan_success: OnScanSuccess,
        on_close: Optional[OnClose] = None,
        feedback: Optional[Feedback] = None,
        config: Optional[DecodeConfig] = None,
        *,
        back_camera_keywords: Sequence[str] = ("back",),
        open_timeout: float = 10.0,
        stop_timeout: float = 5.0,
        tone: Optional[ToneSpec] = None,
        vibrate_ms: int = 200,
        on_change: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> None:
        self._decoder = decoder
        self._platform = platform
        self._on_scan_success = on_scan_success
        self._on_close = on_close
        self._on_change = on_change
        self._feedback = feedback or NullFeedback()
        self._config = config or DecodeConfig()
        self._keywords = [k.lower() for k in back_camera_keywords]
        self._open_timeout = open_timeout
        self._stop_timeout = stop_timeout
        self._tone = tone or ToneSpec()
        self._vibrate_ms = vibrate_ms

        self._handle: Optional[CameraHandle] = None
        self._stream: Optional[MediaStream] = None
        # Cleared while a start sequence is in flight
        self._start_settled = asyncio.Event()
        self._start_settled.set()

        self.status = SessionStatus.IDLE
        self.has_torch = False
        self.torch_on = False
        self.torch_error: Optional[str] = None
        self.error: Optional[CaptureErrorKind] = None
        self.error_message: Optional[str] = None
        self.has_emitted_result = False
        self.manual_input = ""
        self.device: Optional[DeviceInfo] = None

    @classmethod
    def from_settings(
        cls,
        settings,
        decoder: DecoderCapability,
        platform: MediaPlatform,
        on_scan_success: OnScanSuccess,
        **kwargs: Any,
    ) -> ScanSession:
        """Build a session with timeouts, decode config and feedback from Settings."""
        kwargs.setdefault("config", DecodeConfig.from_settings(settings))
        kwargs.setdefault("back_camera_keywords", settings.back_camera_keywords)
        kwargs.setdefault("open_timeout", settings.scanner_open_timeout_seconds)
        kwargs.setdefault("stop_timeout", settings.scanner_stop_timeout_seconds)
        kwargs.setdefault("tone", ToneSpec(
            frequency=settings.feedback_tone_frequency,
            duration=settings.feedback_tone_duration,
            volume=settings.feedback_tone_volume,
        ))
        kwargs.setdefault("vibrate_ms", settings.feedback_vibrate_ms)
        return cls(decoder, platform, on_scan_success, **kwargs)

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    async def __aenter__(self) -> ScanSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close(notify=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def open_timeout(self) -> float:
        return self._open_timeout

    @property
    def is_scanning(self) -> bool:
        return self.status is SessionStatus.SCANNING

    @property
    def is_closed(self) -> bool:
        return self.status is SessionStatus.CLOSED

    @property
    def has_camera(self) -> bool:
        """True while a camera handle is held."""
        return self._handle is not None

    @property
    def can_toggle_torch(self) -> bool:
        return self.is_scanning and self.has_torch and self._stream is not None

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the session state."""
        return {
            "status": self.status.value,
            "has_torch": self.has_torch,
            "torch_on": self.torch_on,
            "torch_error": self.torch_error,
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
            "has_emitted_result": self.has_emitted_result,
            "manual_input": self.manual_input,
            "can_submit_manual": self.can_submit_manual(self.manual_input),
            "device": self.device.to_dict() if self.device else None,
        }

    # =========================================================================
    # DEVICE SELECTION
    # =========================================================================

    def select_device(self, devices: List[DeviceInfo]) -> DeviceInfo:
        """
        Prefer a rear-facing camera, else the first device.

        Args:
            devices: Non-empty device list
        """
        for device in devices:
            label = (device.label or "").lower()
            if any(keyword in label for keyword in self._keywords):
                return device
        return devices[0]

    # =========================================================================
    # START SEQUENCE
    # =========================================================================

    async def open(self) -> None:
        """
        Idle → Starting → Scanning (or Failed).

        Ignored unless the session is Idle, so a second acquisition is never
        attempted while one is outstanding.
        """
        if self.status is not SessionStatus.IDLE:
            logger.debug(f"open() ignored in state {self.status}")
            return

        self._set_status(SessionStatus.STARTING)
        self._start_settled.clear()
        try:
            await self._start()
        finally:
            self._start_settled.set()

    async def _start(self) -> None:
        await self._notify()

        if not self._platform.is_secure_context:
            await self._fail(CaptureErrorKind.INSECURE_CONTEXT)
            return

        if self._platform.is_embedded:
            await self._fail(CaptureErrorKind.EMBEDDED_CONTEXT)
            return

        try:
            devices = await asyncio.wait_for(
                self._decoder.list_devices(), self._open_timeout
            )
            if self.status is not SessionStatus.STARTING:
                logger.info(f"Session left STARTING during device listing ({self.status})")
                return

            if not devices:
                await self._fail(CaptureErrorKind.NO_DEVICE_FOUND)
                return

            device = self.select_device(list(devices))
            self.device = device
            logger.info(f"📷 Opening camera {device.id} ({device.label or 'no label'})")

            handle = await asyncio.wait_for(
                self._decoder.open(device.id, self._config, self.handle_decode),
                self._open_timeout,
            )
        except Exception as e:
            if self.status is SessionStatus.STARTING:
                logger.error(f"Scanner error: {e!r}")
                kind, message = classify(e)
                await self._fail(kind, message)
            else:
                logger.info(f"Discarding late start failure in state {self.status}: {e!r}")
            return

        if self.status is not SessionStatus.STARTING:
            logger.info(f"Session left STARTING during device open ({self.status}), stopping late handle")
            await self._stop_handle(handle)
            return

        if handle.stopped:
            logger.warning(f"Camera {handle.device_id} ended before the session adopted it")
            await self._fail(CaptureErrorKind.DEVICE_UNAVAILABLE)
            return

        self._handle = handle
        handle.on_error = self.handle_device_error
        self._set_status(SessionStatus.SCANNING)
        logger.info("✅ Camera started")
        await self._notify()

        await self._introspect(device)

    async def _introspect(self, device: DeviceInfo) -> None:
        """Acquire the raw stream and read the torch capability."""
        constraints = {"video": {"device_id": device.id, "facing_mode": "environment"}}
        try:
            stream = await asyncio.wait_for(
                self._platform.acquire_stream(constraints), self._open_timeout
            )
        except Exception as e:
            logger.warning(f"Capability introspection failed, torch disabled: {e!r}")
            return

        if self.status is not SessionStatus.SCANNING:
            await self._stop_stream(stream)
            return

        self._stream = stream
        tracks = stream.get_video_tracks()
        capabilities = tracks[0].capabilities() if tracks else {}
        self.has_torch = bool(capabilities.get("torch"))
        logger.debug(f"Video capabilities: {capabilities}")
        if self.has_torch:
            await self._notify()

    # =========================================================================
    # RESULT EMISSION
    # =========================================================================

    async def handle_decode(self, text: str) -> None:
        """
        Decode callback.

        Accepts a candidate only while SCANNING and before any emission.
        """
        if self.status is not SessionStatus.SCANNING or self.has_emitted_result:
            logger.debug(f"Discarding decode candidate in state {self.status}")
            return
        await self._emit(text)

    async def handle_device_error(self, error: BaseException) -> None:
        """
        Device failure callback for a running stream (e.g. camera unplugged).

        Only a SCANNING session reacts; the failure becomes FAILED with a
        category message and the handle is released.
        """
        if self.status is not SessionStatus.SCANNING:
            logger.debug(f"Ignoring device error in state {self.status}: {error!r}")
            return
        logger.error(f"Camera failed while scanning: {error!r}")
        kind, message = classify(error)
        await self._fail(kind, message)

    async def _emit(self, value: str) -> None:
        self.has_emitted_result = True
        self._set_status(SessionStatus.SUCCEEDED)

        await self._fire_feedback()

        try:
            await _invoke(self._on_scan_success, value)
        except Exception:
            logger.exception("on_scan_success callback failed")

        logger.info(f"🎯 Barcode captured: {value}")
        await self._release()
        await self._notify()

    async def _fire_feedback(self) -> None:
        try:
            await self._feedback.play_tone(self._tone)
        except Exception as e:
            logger.error(f"Error playing beep sound: {e}")

        if self._vibrate_ms <= 0:
            return
        try:
            await self._feedback.vibrate(self._vibrate_ms)
        except Exception as e:
            logger.error(f"Error triggering vibration: {e}")

    # =========================================================================
    # MANUAL ENTRY
    # =========================================================================

    @staticmethod
    def can_submit_manual(value: Optional[str]) -> bool:
        """Manual input is submittable once it trims to non-empty."""
        return bool(value and value.strip())

    def set_manual_input(self, value: str) -> None:
        if self.status is SessionStatus.MANUAL_ENTRY:
            self.manual_input = value

    async def request_manual_entry(self) -> bool:
        """
        Switch to manual entry, stopping any active camera handle first.

        Returns:
            True if the session is now in MANUAL_ENTRY
        """
        if self.status in (
            SessionStatus.CLOSED,
            SessionStatus.SUCCEEDED,
        ):
            return False
        if self.status is SessionStatus.MANUAL_ENTRY:
            return True

        self._set_status(SessionStatus.MANUAL_ENTRY)
        await self._release()
        self.manual_input = ""
        await self._notify()
        return True

    async def submit_manual(self, value: Optional[str] = None) -> bool:
        """
        Submit a manually entered barcode.

        Returns:
            True if the value was emitted; False if rejected
        """
        if self.status is not SessionStatus.MANUAL_ENTRY or self.has_emitted_result:
            return False

        raw = self.manual_input if value is None else value
        if not self.can_submit_manual(raw):
            logger.debug("Manual entry rejected: empty input")
            return False

        await self._emit(raw.strip())
        return True

    async def cancel_manual_entry(self) -> None:
        """Leave manual entry: restart the camera, or return to FAILED."""
        if self.status is not SessionStatus.MANUAL_ENTRY:
            return

        self.manual_input = ""
        if not self._start_settled.is_set():
            logger.debug("Waiting for the abandoned start to settle")
            await self._start_settled.wait()
            if self.status is not SessionStatus.MANUAL_ENTRY:
                return

        if self.error is None:
            self._set_status(SessionStatus.IDLE)
            await self.open()
        else:
            self._set_status(SessionStatus.FAILED)
            await self._notify()

    # =========================================================================
    # TORCH
    # =========================================================================

    async def toggle_torch(self) -> bool:
        """
        Invert the torch on the active video track.

        Returns:
            Torch state after the call
        """
        if not self.can_toggle_torch:
            return self.torch_on

        stream = self._stream
        tracks = stream.get_video_tracks()
        if not tracks:
            return self.torch_on

        target = not self.torch_on
        try:
            await tracks[0].apply_constraints({"torch": target})
        except Exception as e:
            if self._stream is not stream:
                return self.torch_on
            self.torch_error = str(e) or type(e).__name__
            logger.error(f"Flash toggle error: {e!r}")
            await self._notify()
            return self.torch_on

        # The stream may have been released while the constraint was applied
        if self.status is not SessionStatus.SCANNING or self._stream is not stream:
            logger.debug(f"Discarding torch toggle result in state {self.status}")
            return self.torch_on

        self.torch_on = target
        self.torch_error = None
        await self._notify()
        return self.torch_on

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    async def close(self, notify: bool = True) -> None:
        """
        Any state → CLOSED. Idempotent.

        Args:
            notify: True for a user dismissal (fires on_close when no
                result was emitted); False for component teardown
        """
        if self.status is SessionStatus.CLOSED:
            return

        dismissed = notify and not self.has_emitted_result
        self._set_status(SessionStatus.CLOSED)
        await self._release()

        if dismissed:
            try:
                await _invoke(self._on_close)
            except Exception:
                logger.exception("on_close callback failed")
        await self._notify()
        logger.info("🛑 Scan session closed")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self.status:
            logger.debug(f"Session {self.status} → {status}")
            self.status = status

    async def _notify(self) -> None:
        try:
            await _invoke(self._on_change, self.snapshot())
        except Exception as e:
            logger.warning(f"State listener failed: {e}")

    async def _fail(self, kind: CaptureErrorKind, message: Optional[str] = None) -> None:
        self.error = kind
        self.error_message = message or message_for(kind)
        self._set_status(SessionStatus.FAILED)
        logger.warning(f"⚠️ Capture failed [{kind}]: {self.error_message}")
        await self._release()
        await self._notify()

    async def _release(self) -> None:
        """Stop the camera handle, then release the raw stream tracks."""
        handle, self._handle = self._handle, None
        stream, self._stream = self._stream, None
        self.torch_on = False
        self.has_torch = False

        if handle is not None:
            await self._stop_handle(handle)
        if stream is not None:
            await self._stop_stream(stream)

    async def _stop_handle(self, handle: CameraHandle) -> None:
        try:
            await asyncio.wait_for(self._decoder.stop(handle), self._stop_timeout)
        except Exception as e:
            logger.error(f"Error stopping scanner: {e!r}")

    async def _stop_stream(self, stream: MediaStream) -> None:
        for track in self._tracks(stream):
            try:
                await track.stop()
            except Exception as e:
                logger.error(f"Error releasing media track: {e!r}")

    @staticmethod
    def _tracks(stream: MediaStream) -> Iterable:
        try:
            return list(stream.get_tracks())
        except Exception as e:
            logger.error(f"Error reading media tracks: {e!r}")
            return []
