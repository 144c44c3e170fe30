"""
==============================================================================
Capture WebSocket Module
==============================================================================

Live barcode capture session between a browser and the service.

Protocol:
---------
1. Client connects and sends hello:
       {"type": "hello", "source": "client", "secure_context": true,
        "embedded": false}
   source "client" uses the browser camera, "server" a camera attached
   to the service host.
2. Server opens the session and answers camera requests through the
   client (see remote.py); the client streams frames as base64.
3. Client user actions: manual_entry, manual_input {value},
   manual_submit {value}, manual_cancel, toggle_torch, close.
4. Server events: state {...}, feedback {...}, result {barcode},
   closed, error {code, message}.

A receive loop handles replies, frames and the opt-out actions (close,
manual entry and submit); an action worker runs the device actions (open,
manual cancel, torch) one at a time. Opting out therefore never waits
behind an in-flight device open; the session discards whatever that open
returns late.

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from shelfscan.config import Settings, get_settings
from shelfscan.scanner import (
    OpenCVCameraDecoder,
    OpenCVMediaPlatform,
    ScanSession,
    SessionStatus,
)
from shelfscan.websockets.remote import (
    RemoteDecoder,
    RemoteFeedback,
    RemotePeer,
    RemotePlatform,
)


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()

# Actions that drive the device run one at a time behind any in-flight open
QUEUED_ACTIONS = {"open", "manual_cancel", "toggle_torch"}

# Opting out of the camera never waits for the device
IMMEDIATE_ACTIONS = {"manual_entry", "manual_submit"}


class CaptureWebSocketHandler:
    """
    Handler for one live capture WebSocket connection.

    Owns exactly one ScanSession and tears it down on every exit path.
    """

    def __init__(self, websocket: WebSocket, settings: Settings) -> None:
        self._websocket = websocket
        self._settings = settings
        self._peer = RemotePeer(websocket)
        self._session: Optional[ScanSession] = None
        self._remote_decoder: Optional[RemoteDecoder] = None
        self._actions: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()
        self._frame_count = 0

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    # =========================================================================
    # OUTGOING EVENTS
    # =========================================================================

    async def send_error(self, message: str, code: str = "ERROR") -> None:
        """Send error message to client."""
        await self._peer.send({
            "type": "error",
            "code": code,
            "message": message
        })

    async def _on_change(self, snapshot: Dict[str, Any]) -> None:
        await self._peer.send({"type": "state", **snapshot})

    async def _on_scan_success(self, barcode: str) -> None:
        await self._peer.send({"type": "result", "barcode": barcode})

    async def _on_close(self) -> None:
        await self._peer.send({"type": "closed"})

    # =========================================================================
    # SESSION SETUP
    # =========================================================================

    def build_session(self, hello: Dict[str, Any]) -> ScanSession:
        """
        Build the session for the camera source requested in hello.

        Raises:
            ValueError: If the source is unknown
        """
        source = str(hello.get("source") or self._settings.default_capture_source).lower()
        overrides: Dict[str, Any] = {}

        if source == "client":
            self._remote_decoder = RemoteDecoder(self._peer)
            decoder = self._remote_decoder
            platform = RemotePlatform(
                self._peer,
                secure_context=bool(hello.get("secure_context", False)),
                embedded=bool(hello.get("embedded", False)),
            )
            overrides["open_timeout"] = self._settings.scanner_client_open_timeout_seconds
        elif source == "server":
            decoder = OpenCVCameraDecoder(max_devices=self._settings.scanner_max_local_devices)
            platform = OpenCVMediaPlatform(decoder)
        else:
            raise ValueError(f"Unsupported capture source: {source}")

        logger.info(f"Capture source: {source}")
        return ScanSession.from_settings(
            self._settings,
            decoder,
            platform,
            self._on_scan_success,
            on_close=self._on_close,
            feedback=RemoteFeedback(self._peer),
            on_change=self._on_change,
            **overrides,
        )

    # =========================================================================
    # ACTIONS
    # =========================================================================

    async def perform(self, action: str, value: Any = None) -> None:
        """Run one user action against the session."""
        session = self._session
        if action == "open":
            await session.open()
        elif action == "manual_entry":
            await session.request_manual_entry()
        elif action == "manual_submit":
            if not await session.submit_manual(value):
                await self.send_error("Enter a barcode first", "EMPTY_MANUAL_INPUT")
        elif action == "manual_cancel":
            await session.cancel_manual_entry()
        elif action == "toggle_torch":
            await session.toggle_torch()

    async def _action_worker(self) -> None:
        while True:
            action, value = await self._actions.get()
            try:
                await self.perform(action, value)
            except Exception as e:
                logger.error(f"Capture action '{action}' failed: {e!r}")
            finally:
                self._actions.task_done()

    async def dispatch(self, data: Dict[str, Any]) -> bool:
        """
        Handle one client message.

        Returns:
            False when the connection should end
        """
        msg_type = data.get("type")

        if msg_type == "reply":
            self._peer.resolve(data)
        elif msg_type == "frame":
            self._frame_count += 1
            if self._remote_decoder is not None:
                await self._remote_decoder.feed_frame(str(data.get("frame") or ""))
        elif msg_type == "manual_input":
            self._session.set_manual_input(str(data.get("value") or ""))
            await self._on_change(self._session.snapshot())
        elif msg_type in QUEUED_ACTIONS:
            await self._actions.put((msg_type, data.get("value")))
        elif msg_type in IMMEDIATE_ACTIONS:
            await self.perform(msg_type, data.get("value"))
        elif msg_type == "close":
            logger.info("🛑 Client requested close")
            await self._session.close(notify=True)
            return False
        else:
            await self.send_error(f"Unknown message type: {msg_type}", "UNKNOWN_MESSAGE")

        return True

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Capture WebSocket connected")

        worker: Optional[asyncio.Task] = None
        try:
            hello = await self._websocket.receive_json()
            if hello.get("type") != "hello":
                await self.send_error("Expected hello message", "HELLO_REQUIRED")
                return

            try:
                self._session = self.build_session(hello)
            except ValueError as e:
                await self.send_error(str(e), "UNSUPPORTED_SOURCE")
                return

            worker = asyncio.create_task(self._action_worker())
            await self._actions.put(("open", None))

            while True:
                data = await self._websocket.receive_json()
                if not await self.dispatch(data):
                    break

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e!r}")
            try:
                await self.send_error(str(e))
            except Exception:
                logger.debug("Could not report error to client")
        finally:
            await self._teardown(worker)

    async def _teardown(self, worker: Optional[asyncio.Task]) -> None:
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        if self._session is not None and self._session.status is not SessionStatus.CLOSED:
            await self._session.close(notify=False)

        self._peer.shutdown()
        try:
            await self._websocket.close()
        except Exception:
            logger.debug("WebSocket already closed")
        logger.info(f"✅ Capture WebSocket closed ({self._frame_count} frames)")


@router.websocket("/ws/capture")
async def websocket_capture(
    websocket: WebSocket,
    settings: Settings = Depends(get_settings),
):
    """Live barcode capture session."""
    handler = CaptureWebSocketHandler(websocket, settings)
    await handler.run()
