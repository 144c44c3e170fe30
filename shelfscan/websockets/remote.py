"""
==============================================================================
Remote Capture Adapters
==============================================================================

Capture collaborators for cameras owned by the browser on the other end
of a WebSocket.

Protocol:
---------
Server → client requests carry an id; the client answers with a reply:

    {"type": "request", "id": 3, "action": "open", "device_id": "...", "config": {...}}
    {"type": "reply", "id": 3, "ok": true, "result": {...}}
    {"type": "reply", "id": 3, "ok": false, "error": {"name": "NotAllowedError", "message": "..."}}

Actions: list_devices, open, acquire_stream, apply_constraints.

Notifications need no reply: stop, release_track, feedback.

Frames arrive as {"type": "frame", "frame": "<base64 JPEG>"} and are
decoded on the server with pyzbar.

==============================================================================
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from shelfscan.scanner.decoder import FrameDecoder
from shelfscan.scanner.errors import CaptureDeviceError
from shelfscan.scanner.interfaces import (
    CameraHandle,
    DecodeCallback,
    DecodeConfig,
    DecoderCapability,
    DeviceInfo,
    Feedback,
    MediaPlatform,
    MediaStream,
    MediaTrack,
    ToneSpec,
)


# Module logger
logger = logging.getLogger(__name__)


class RemotePeer:
    """
    Request/reply and notification channel over a WebSocket.

    Replies are matched to pending requests by id; the receive loop of
    the owning handler feeds them in through resolve().
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._pending: Dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._send_lock = asyncio.Lock()
        self.closed = False

    async def send(self, message: Dict[str, Any]) -> None:
        """
        Send a JSON message.

        Raises:
            ConnectionError: If the channel is already closed
        """
        if self.closed:
            raise ConnectionError("Capture channel is closed")
        async with self._send_lock:
            await self._websocket.send_json(message)

    async def request(self, action: str, **payload: Any) -> Dict[str, Any]:
        """
        Send a request and wait for its reply.

        Raises:
            CaptureDeviceError: If the client replies with an error
        """
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.send({"type": "request", "id": request_id, "action": action, **payload})
            return await future
        finally:
            self._pending.pop(request_id, None)

    def resolve(self, message: Dict[str, Any]) -> None:
        """Complete the pending request a reply belongs to."""
        future = self._pending.get(message.get("id"))
        if future is None or future.done():
            logger.debug(f"Ignoring reply without pending request: {message.get('id')}")
            return

        if message.get("ok"):
            future.set_result(message.get("result") or {})
            return

        error = message.get("error") or {}
        future.set_exception(CaptureDeviceError(
            str(error.get("name") or "Error"),
            str(error.get("message") or ""),
        ))

    def shutdown(self) -> None:
        """Mark the channel closed and cancel outstanding requests."""
        self.closed = True
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()


@dataclass
class RemoteCameraHandle(CameraHandle):
    """Handle over a camera stream running in the browser."""
    on_decode: Optional[DecodeCallback] = None


class RemoteDecoder(DecoderCapability):
    """
    Decoder capability for browser cameras.

    Device access happens on the client; frames it forwards are decoded
    here and delivered to the handle's decode callback.
    """

    def __init__(self, peer: RemotePeer) -> None:
        self._peer = peer
        self._active: Optional[RemoteCameraHandle] = None
        self._frame_decoder: Optional[FrameDecoder] = None

    async def list_devices(self) -> List[DeviceInfo]:
        result = await self._peer.request("list_devices")
        return [
            DeviceInfo(id=str(d.get("id", "")), label=str(d.get("label") or ""))
            for d in result.get("devices", [])
            if d.get("id") is not None
        ]

    async def open(
        self,
        device_id: str,
        config: DecodeConfig,
        on_decode: DecodeCallback,
    ) -> RemoteCameraHandle:
        await self._peer.request("open", device_id=device_id, config=config.to_dict())

        handle = RemoteCameraHandle(device_id=device_id, config=config, on_decode=on_decode)
        self._active = handle
        self._frame_decoder = FrameDecoder(config.decode_region)
        return handle

    async def stop(self, handle: CameraHandle) -> None:
        if handle.stopped:
            return
        handle.stopped = True
        if self._active is handle:
            self._active = None
        await self._peer.send({"type": "stop", "device_id": handle.device_id})

    async def feed_frame(self, payload: str) -> int:
        """
        Decode a forwarded frame and deliver each candidate.

        Returns:
            Number of candidates delivered
        """
        handle = self._active
        if handle is None or handle.stopped or self._frame_decoder is None:
            return 0

        texts = await asyncio.to_thread(self._frame_decoder.decode_base64, payload)
        delivered = 0
        for text in texts:
            if handle.stopped or handle.on_decode is None:
                break
            await handle.on_decode(text)
            delivered += 1
        return delivered


class RemoteTrack(MediaTrack):
    """A media track living in the browser."""

    def __init__(
        self,
        peer: RemotePeer,
        track_id: str,
        kind: str = "video",
        capabilities: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._peer = peer
        self.track_id = track_id
        self.kind = kind
        self._capabilities = dict(capabilities or {})

    def capabilities(self) -> Dict[str, Any]:
        return dict(self._capabilities)

    async def apply_constraints(self, constraints: Dict[str, Any]) -> None:
        await self._peer.request(
            "apply_constraints", track_id=self.track_id, constraints=constraints
        )

    async def stop(self) -> None:
        await self._peer.send({"type": "release_track", "track_id": self.track_id})


class RemoteStream(MediaStream):
    def __init__(self, tracks: List[RemoteTrack]) -> None:
        self._tracks = tracks

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)


class RemotePlatform(MediaPlatform):
    """Browser execution context as announced in the client's hello."""

    def __init__(self, peer: RemotePeer, secure_context: bool, embedded: bool) -> None:
        self._peer = peer
        self._secure_context = secure_context
        self._embedded = embedded

    @property
    def is_secure_context(self) -> bool:
        return self._secure_context

    @property
    def is_embedded(self) -> bool:
        return self._embedded

    async def acquire_stream(self, constraints: Dict[str, Any]) -> MediaStream:
        result = await self._peer.request("acquire_stream", constraints=constraints)
        tracks = [
            RemoteTrack(
                self._peer,
                track_id=str(t.get("id", index)),
                kind=str(t.get("kind") or "video"),
                capabilities=t.get("capabilities"),
            )
            for index, t in enumerate(result.get("tracks", []))
        ]
        return RemoteStream(tracks)


class RemoteFeedback(Feedback):
    """Asks the browser to beep and vibrate."""

    def __init__(self, peer: RemotePeer) -> None:
        self._peer = peer

    async def play_tone(self, tone: ToneSpec) -> None:
        await self._peer.send({"type": "feedback", "tone": tone.to_dict()})

    async def vibrate(self, duration_ms: int) -> None:
        await self._peer.send({"type": "feedback", "vibrate_ms": duration_ms})
