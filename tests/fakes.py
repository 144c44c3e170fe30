"""
==============================================================================
Capture Test Doubles
==============================================================================

Scriptable stand-ins for the camera, media platform and feedback
collaborators of ScanSession.

==============================================================================
"""

import asyncio
from typing import Any, Dict, List, Optional

from shelfscan.scanner import (
    CameraHandle,
    DecodeConfig,
    DecoderCapability,
    DeviceInfo,
    Feedback,
    MediaPlatform,
    MediaStream,
    MediaTrack,
    ToneSpec,
)


class FakeDecoder(DecoderCapability):
    """
    Scriptable decoder capability.

    Set `open_gate` to an unset asyncio.Event to hold open() until the
    test releases it.
    """

    def __init__(self, devices: Optional[List[DeviceInfo]] = None) -> None:
        self.devices = devices if devices is not None else [DeviceInfo("cam-1", "Integrated Camera")]
        self.list_error: Optional[BaseException] = None
        self.open_error: Optional[BaseException] = None
        self.stop_error: Optional[BaseException] = None
        self.open_gate: Optional[asyncio.Event] = None
        self.opened: List[CameraHandle] = []
        self.open_calls: List[str] = []
        self.stop_calls: List[CameraHandle] = []
        self.on_decode = None

    async def list_devices(self) -> List[DeviceInfo]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)

    async def open(self, device_id: str, config: DecodeConfig, on_decode) -> CameraHandle:
        self.open_calls.append(device_id)
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self.open_error is not None:
            raise self.open_error
        self.on_decode = on_decode
        handle = CameraHandle(device_id=device_id, config=config)
        self.opened.append(handle)
        return handle

    async def stop(self, handle: CameraHandle) -> None:
        self.stop_calls.append(handle)
        if self.stop_error is not None:
            raise self.stop_error
        handle.stopped = True

    async def decode(self, text: str) -> None:
        """Deliver a decode candidate the way a running stream would."""
        await self.on_decode(text)


class FakeTrack(MediaTrack):
    def __init__(self, capabilities: Optional[Dict[str, Any]] = None) -> None:
        self._capabilities = capabilities or {}
        self.applied: List[Dict[str, Any]] = []
        self.apply_error: Optional[BaseException] = None
        self.apply_gate: Optional[asyncio.Event] = None
        self.stopped = 0

    def capabilities(self) -> Dict[str, Any]:
        return dict(self._capabilities)

    async def apply_constraints(self, constraints: Dict[str, Any]) -> None:
        if self.apply_gate is not None:
            await self.apply_gate.wait()
        if self.apply_error is not None:
            raise self.apply_error
        self.applied.append(constraints)

    async def stop(self) -> None:
        self.stopped += 1


class FakeStream(MediaStream):
    def __init__(self, tracks: List[MediaTrack]) -> None:
        self.tracks = tracks

    def get_tracks(self) -> List[MediaTrack]:
        return list(self.tracks)


class FakePlatform(MediaPlatform):
    def __init__(self, secure: bool = True, embedded: bool = False, torch: bool = False) -> None:
        self.secure = secure
        self.embedded = embedded
        self.track = FakeTrack({"torch": torch})
        self.acquire_error: Optional[BaseException] = None
        self.constraints: List[Dict[str, Any]] = []

    @property
    def is_secure_context(self) -> bool:
        return self.secure

    @property
    def is_embedded(self) -> bool:
        return self.embedded

    async def acquire_stream(self, constraints: Dict[str, Any]) -> MediaStream:
        self.constraints.append(constraints)
        if self.acquire_error is not None:
            raise self.acquire_error
        return FakeStream([self.track])


class RecordingFeedback(Feedback):
    def __init__(self) -> None:
        self.tones: List[ToneSpec] = []
        self.vibrations: List[int] = []

    async def play_tone(self, tone: ToneSpec) -> None:
        self.tones.append(tone)

    async def vibrate(self, duration_ms: int) -> None:
        self.vibrations.append(duration_ms)

