"""
==============================================================================
Capture Collaborator Interfaces
==============================================================================

Abstract collaborators of a ScanSession.

    ┌──────────────────┐   list/open/stop    ┌──────────────────────┐
    │   ScanSession    │ ──────────────────▶ │  DecoderCapability   │
    │                  │ ◀────────────────── │  (frames → strings)  │
    │                  │     on_decode       └──────────────────────┘
    │                  │   acquire_stream    ┌──────────────────────┐
    │                  │ ──────────────────▶ │    MediaPlatform     │
    │                  │                     │ (context, tracks)    │
    │                  │   tone / vibrate    ┌──────────────────────┐
    │                  │ ──────────────────▶ │      Feedback        │
    └──────────────────┘                     └──────────────────────┘

Platform failures are raised as CaptureDeviceError (see errors.py).

==============================================================================
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


DecodeCallback = Callable[[str], Awaitable[None]]
DeviceErrorCallback = Callable[[BaseException], Awaitable[None]]


@dataclass(frozen=True)
class DeviceInfo:
    """A capture device as reported by the decoder capability."""
    id: str
    label: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label}


@dataclass(frozen=True)
class DecodeConfig:
    """Stream parameters passed to DecoderCapability.open()."""
    frame_rate: int = 10
    decode_region: Tuple[int, int] = (280, 200)
    aspect_ratio: float = 1.4

    @classmethod
    def from_settings(cls, settings) -> DecodeConfig:
        return cls(
            frame_rate=settings.scanner_frame_rate,
            decode_region=(settings.scanner_region_width, settings.scanner_region_height),
            aspect_ratio=settings.scanner_aspect_ratio,
        )

    def to_dict(self) -> Dict[str, Any]:
        width, height = self.decode_region
        return {
            "frame_rate": self.frame_rate,
            "decode_region": {"width": width, "height": height},
            "aspect_ratio": self.aspect_ratio,
        }


@dataclass
class CameraHandle:
    """
    An open device stream.

    Owned by exactly one ScanSession. Implementations keep their own
    resources on subclasses; `stopped` makes stop() idempotent. A decoder
    whose stream dies on its own awaits `on_error`, which the owning
    session sets when it adopts the handle.
    """
    device_id: str
    config: DecodeConfig
    stopped: bool = field(default=False)
    on_error: Optional[DeviceErrorCallback] = field(default=None, repr=False)


class DecoderCapability(ABC):
    """Turns a live video stream into a lazy sequence of decoded strings."""

    @abstractmethod
    async def list_devices(self) -> List[DeviceInfo]:
        """Enumerate capture devices."""

    @abstractmethod
    async def open(
        self,
        device_id: str,
        config: DecodeConfig,
        on_decode: DecodeCallback,
    ) -> CameraHandle:
        """Open a stream on a device; on_decode is awaited for each candidate."""

    @abstractmethod
    async def stop(self, handle: CameraHandle) -> None:
        """Stop a stream. Must tolerate an already stopped handle."""


class MediaTrack(ABC):
    """A single track of a raw media stream."""

    kind: str = "video"

    @abstractmethod
    def capabilities(self) -> Dict[str, Any]:
        """Hardware capabilities, e.g. {"torch": True}."""

    @abstractmethod
    async def apply_constraints(self, constraints: Dict[str, Any]) -> None:
        """Apply constraints such as {"torch": True}."""

    @abstractmethod
    async def stop(self) -> None:
        """Release the track."""


class MediaStream(ABC):
    """A raw media stream used for capability introspection."""

    @abstractmethod
    def get_tracks(self) -> List[MediaTrack]:
        """All tracks of the stream."""

    def get_video_tracks(self) -> List[MediaTrack]:
        return [t for t in self.get_tracks() if t.kind == "video"]


class MediaPlatform(ABC):
    """Execution context and raw device access."""

    @property
    @abstractmethod
    def is_secure_context(self) -> bool:
        """True when running over an encrypted transport."""

    @property
    @abstractmethod
    def is_embedded(self) -> bool:
        """True when running inside a restricted embedded frame."""

    @abstractmethod
    async def acquire_stream(self, constraints: Dict[str, Any]) -> MediaStream:
        """Acquire a raw media stream."""


@dataclass(frozen=True)
class ToneSpec:
    """Success tone parameters."""
    frequency: int = 1000
    duration: float = 0.1
    volume: float = 0.3
    waveform: str = "sine"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frequency": self.frequency,
            "duration_ms": int(self.duration * 1000),
            "volume": self.volume,
            "waveform": self.waveform,
        }


class Feedback(ABC):
    """Audio and haptic cues fired on a successful scan."""

    @abstractmethod
    async def play_tone(self, tone: ToneSpec) -> None:
        """Emit an audio tone."""

    @abstractmethod
    async def vibrate(self, duration_ms: int) -> None:
        """Trigger a haptic pulse."""


class NullFeedback(Feedback):
    """Feedback sink for sessions without an attached user device."""

    async def play_tone(self, tone: ToneSpec) -> None:
        return None

    async def vibrate(self, duration_ms: int) -> None:
        return None


OnScanSuccess = Callable[[str], Optional[Awaitable[None]]]
OnClose = Callable[[], Optional[Awaitable[None]]]
