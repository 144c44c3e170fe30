"""
==============================================================================
Capture Session Tests
==============================================================================

State machine behaviour of ScanSession against scripted collaborators.

==============================================================================
"""

import asyncio
from typing import List

import pytest

from fakes import FakeDecoder, FakePlatform, RecordingFeedback
from shelfscan.config import Settings
from shelfscan.scanner import (
    CaptureDeviceError,
    CaptureErrorKind,
    DeviceInfo,
    ScanSession,
    SessionStatus,
    ToneSpec,
)
from shelfscan.scanner.errors import MESSAGES


@pytest.fixture
def closes() -> List[int]:
    return []


@pytest.fixture
def make_session(decoder, platform, feedback, results, closes):
    def factory(**kwargs) -> ScanSession:
        kwargs.setdefault("on_close", lambda: closes.append(1))
        kwargs.setdefault("feedback", feedback)
        return ScanSession(decoder, platform, results.append, **kwargs)
    return factory


class TestStart:
    @pytest.mark.asyncio
    async def test_open_reaches_scanning(self, make_session, decoder, platform):
        session = make_session()
        await session.open()

        assert session.status is SessionStatus.SCANNING
        assert session.has_camera
        assert decoder.open_calls == ["cam-1"]
        assert platform.constraints == [
            {"video": {"device_id": "cam-1", "facing_mode": "environment"}}
        ]

    @pytest.mark.asyncio
    async def test_state_changes_reported(self, decoder, platform):
        statuses = []
        session = ScanSession(
            decoder, platform, lambda text: None,
            on_change=lambda snapshot: statuses.append(snapshot["status"]),
        )
        await session.open()
        assert statuses == ["starting", "scanning"]

    @pytest.mark.asyncio
    async def test_back_camera_preferred(self, make_session, decoder):
        decoder.devices = [DeviceInfo("front-id", "Front"), DeviceInfo("back-id", "Back Camera")]
        session = make_session()
        await session.open()

        assert decoder.open_calls == ["back-id"]
        assert session.device == DeviceInfo("back-id", "Back Camera")

    @pytest.mark.asyncio
    async def test_first_device_without_back_label(self, make_session, decoder):
        decoder.devices = [DeviceInfo("a", "USB Camera"), DeviceInfo("b", "")]
        await make_session().open()
        assert decoder.open_calls == ["a"]

    @pytest.mark.asyncio
    async def test_open_ignored_when_not_idle(self, make_session, decoder):
        session = make_session()
        await session.open()
        await session.open()
        assert decoder.open_calls == ["cam-1"]

    @pytest.mark.asyncio
    async def test_config_from_settings(self, decoder, platform):
        settings = Settings(scanner_frame_rate=15, scanner_region_width=300)
        session = ScanSession.from_settings(settings, decoder, platform, lambda text: None)
        await session.open()

        config = decoder.opened[0].config
        assert config.frame_rate == 15
        assert config.decode_region == (300, 200)

    @pytest.mark.asyncio
    async def test_introspection_failure_keeps_scanning(self, make_session, platform):
        platform.acquire_error = CaptureDeviceError("NotReadableError", "busy")
        session = make_session()
        await session.open()

        assert session.status is SessionStatus.SCANNING
        assert session.has_torch is False


class TestStartFailures:
    @pytest.mark.asyncio
    async def test_insecure_context(self, make_session, decoder, platform):
        platform.secure = False
        session = make_session()
        await session.open()

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.INSECURE_CONTEXT
        assert session.error_message == MESSAGES[CaptureErrorKind.INSECURE_CONTEXT]
        assert decoder.open_calls == []

    @pytest.mark.asyncio
    async def test_embedded_context(self, make_session, decoder, platform):
        platform.embedded = True
        session = make_session()
        await session.open()

        assert session.error is CaptureErrorKind.EMBEDDED_CONTEXT
        assert decoder.open_calls == []

    @pytest.mark.asyncio
    async def test_no_devices_then_manual_entry(self, make_session, decoder, results):
        decoder.devices = []
        session = make_session()
        await session.open()

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.NO_DEVICE_FOUND

        assert await session.request_manual_entry() is True
        assert session.status is SessionStatus.MANUAL_ENTRY
        assert await session.submit_manual("  4607159730018 ") is True
        assert results == ["4607159730018"]

    @pytest.mark.asyncio
    async def test_permission_denied(self, make_session, decoder):
        decoder.open_error = CaptureDeviceError("NotAllowedError", "denied by user")
        session = make_session()
        await session.open()

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.PERMISSION_DENIED
        assert not session.has_camera

    @pytest.mark.asyncio
    async def test_list_failure_classified(self, make_session, decoder):
        decoder.list_error = CaptureDeviceError("NotSupportedError")
        session = make_session()
        await session.open()
        assert session.error is CaptureErrorKind.UNSUPPORTED_CONTEXT

    @pytest.mark.asyncio
    async def test_unknown_failure_message(self, make_session, decoder):
        decoder.open_error = RuntimeError("driver exploded")
        session = make_session()
        await session.open()

        assert session.error is CaptureErrorKind.UNKNOWN_START_FAILURE
        assert session.error_message == "Failed to start the camera: driver exploded"

    @pytest.mark.asyncio
    async def test_open_timeout(self, make_session, decoder):
        decoder.open_gate = asyncio.Event()
        session = make_session(open_timeout=0.05)
        await session.open()

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.DEVICE_UNAVAILABLE


class TestResult:
    @pytest.mark.asyncio
    async def test_decode_emits_once(self, make_session, decoder, feedback, results):
        session = make_session()
        await session.open()
        handle = decoder.opened[0]

        await decoder.decode("4607159730018")

        assert results == ["4607159730018"]
        assert len(feedback.tones) == 1
        assert feedback.tones[0] == ToneSpec(frequency=1000, duration=0.1, volume=0.3)
        assert feedback.vibrations == [200]
        assert handle.stopped
        assert decoder.stop_calls == [handle]
        assert session.status is SessionStatus.SUCCEEDED
        assert session.has_emitted_result

    @pytest.mark.asyncio
    async def test_burst_of_decodes(self, make_session, decoder, feedback, results):
        session = make_session()
        await session.open()

        await asyncio.gather(*(decoder.decode(f"code-{i}") for i in range(5)))

        assert results == ["code-0"]
        assert len(feedback.tones) == 1
        assert len(decoder.stop_calls) == 1

    @pytest.mark.asyncio
    async def test_late_decode_after_close(self, make_session, decoder, results):
        session = make_session()
        await session.open()
        await session.close()

        await decoder.decode("4607159730018")
        assert results == []

    @pytest.mark.asyncio
    async def test_decode_during_manual_entry_discarded(self, make_session, decoder, results):
        session = make_session()
        await session.open()
        await session.request_manual_entry()

        await decoder.decode("4607159730018")
        assert results == []
        assert session.status is SessionStatus.MANUAL_ENTRY

    @pytest.mark.asyncio
    async def test_stop_failure_is_not_fatal(self, make_session, decoder, results):
        decoder.stop_error = RuntimeError("device gone")
        session = make_session()
        await session.open()
        await decoder.decode("12345670")

        assert results == ["12345670"]
        assert session.status is SessionStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_feedback_failure_is_not_fatal(self, decoder, platform, results):
        class BrokenFeedback(RecordingFeedback):
            async def play_tone(self, tone):
                raise RuntimeError("no audio device")

        broken = BrokenFeedback()
        session = ScanSession(decoder, platform, results.append, feedback=broken)
        await session.open()
        await decoder.decode("12345670")

        assert results == ["12345670"]
        assert broken.vibrations == [200]

    @pytest.mark.asyncio
    async def test_callback_failure_still_releases(self, decoder, platform):
        def explode(text):
            raise ValueError("consumer bug")

        session = ScanSession(decoder, platform, explode)
        await session.open()
        await decoder.decode("12345670")

        assert decoder.opened[0].stopped
        assert session.status is SessionStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_async_result_callback(self, decoder, platform):
        received = []

        async def on_scan_success(text):
            received.append(text)

        session = ScanSession(decoder, platform, on_scan_success)
        await session.open()
        await decoder.decode("12345670")
        assert received == ["12345670"]
    @pytest.mark.asyncio
    async def test_device_error_while_scanning(self, make_session, decoder, results):
        session = make_session()
        await session.open()
        handle = decoder.opened[0]
        assert handle.on_error is not None

        await handle.on_error(CaptureDeviceError("NotReadableError", "unplugged"))

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.DEVICE_UNAVAILABLE
        assert handle.stopped
        assert await session.request_manual_entry() is True

    @pytest.mark.asyncio
    async def test_device_error_after_result_ignored(self, make_session, decoder):
        session = make_session()
        await session.open()
        handle = decoder.opened[0]
        await decoder.decode("12345670")

        await handle.on_error(CaptureDeviceError("NotReadableError", "unplugged"))

        assert session.status is SessionStatus.SUCCEEDED
        assert session.error is None


class TestManualEntry:
    @pytest.mark.asyncio
    async def test_whitespace_rejected(self, make_session, results):
        session = make_session()
        await session.request_manual_entry()

        assert await session.submit_manual("   ") is False
        assert results == []
        assert session.status is SessionStatus.MANUAL_ENTRY

    @pytest.mark.asyncio
    async def test_submit_uses_typed_input(self, make_session, results):
        session = make_session()
        await session.request_manual_entry()
        session.set_manual_input("12345670")

        assert session.snapshot()["can_submit_manual"] is True
        assert await session.submit_manual() is True
        assert results == ["12345670"]

    @pytest.mark.asyncio
    async def test_entry_stops_camera(self, make_session, decoder):
        session = make_session()
        await session.open()
        handle = decoder.opened[0]

        assert await session.request_manual_entry() is True
        assert handle.stopped
        assert not session.has_camera

    @pytest.mark.asyncio
    async def test_cancel_restarts_camera(self, make_session, decoder):
        session = make_session()
        await session.open()
        await session.request_manual_entry()
        await session.cancel_manual_entry()

        assert session.status is SessionStatus.SCANNING
        assert len(decoder.opened) == 2

    @pytest.mark.asyncio
    async def test_cancel_after_error_returns_to_failed(self, make_session, decoder):
        decoder.devices = []
        session = make_session()
        await session.open()
        await session.request_manual_entry()
        await session.cancel_manual_entry()

        assert session.status is SessionStatus.FAILED
        assert session.error is CaptureErrorKind.NO_DEVICE_FOUND

    @pytest.mark.asyncio
    async def test_submit_only_once(self, make_session, results):
        session = make_session()
        await session.request_manual_entry()
        await session.submit_manual("12345670")

        assert await session.submit_manual("87654321") is False
        assert await session.request_manual_entry() is False
        assert results == ["12345670"]
    @pytest.mark.asyncio
    async def test_entry_while_starting(self, make_session, decoder, results):
        decoder.open_gate = asyncio.Event()
        session = make_session()
        start = asyncio.create_task(session.open())
        while not decoder.open_calls:
            await asyncio.sleep(0)

        assert await session.request_manual_entry() is True
        assert session.status is SessionStatus.MANUAL_ENTRY

        decoder.open_gate.set()
        await start

        assert session.status is SessionStatus.MANUAL_ENTRY
        assert decoder.opened[0].stopped
        assert not session.has_camera

        assert await session.submit_manual("12345670") is True
        assert results == ["12345670"]

    @pytest.mark.asyncio
    async def test_cancel_waits_for_abandoned_start(self, make_session, decoder):
        decoder.open_gate = asyncio.Event()
        session = make_session()
        start = asyncio.create_task(session.open())
        while not decoder.open_calls:
            await asyncio.sleep(0)
        await session.request_manual_entry()

        cancel = asyncio.create_task(session.cancel_manual_entry())
        for _ in range(5):
            await asyncio.sleep(0)
        assert decoder.open_calls == ["cam-1"]

        decoder.open_gate.set()
        await start
        await cancel

        assert session.status is SessionStatus.SCANNING
        assert decoder.open_calls == ["cam-1", "cam-1"]
        first, second = decoder.opened
        assert first.stopped
        assert not second.stopped

    @pytest.mark.asyncio
    async def test_close_while_waiting_for_abandoned_start(self, make_session, decoder):
        decoder.open_gate = asyncio.Event()
        session = make_session()
        start = asyncio.create_task(session.open())
        while not decoder.open_calls:
            await asyncio.sleep(0)
        await session.request_manual_entry()

        cancel = asyncio.create_task(session.cancel_manual_entry())
        await asyncio.sleep(0)
        await session.close()
        decoder.open_gate.set()
        await start
        await cancel

        assert session.is_closed
        assert decoder.open_calls == ["cam-1"]


class TestTorch:
    @pytest.mark.asyncio
    async def test_noop_without_capability(self, make_session, platform):
        session = make_session()
        await session.open()

        assert await session.toggle_torch() is False
        assert platform.track.applied == []

    @pytest.mark.asyncio
    async def test_toggle(self, make_session, decoder, feedback, results):
        platform = FakePlatform(torch=True)
        session = ScanSession(decoder, platform, results.append, feedback=feedback)
        await session.open()

        assert session.has_torch
        assert await session.toggle_torch() is True
        assert await session.toggle_torch() is False
        assert platform.track.applied == [{"torch": True}, {"torch": False}]

    @pytest.mark.asyncio
    async def test_failure_sets_torch_error(self, decoder, results):
        platform = FakePlatform(torch=True)
        platform.track.apply_error = CaptureDeviceError("OverconstrainedError", "torch")
        session = ScanSession(decoder, platform, results.append)
        await session.open()

        assert await session.toggle_torch() is False
        assert session.torch_error
        assert session.status is SessionStatus.SCANNING
    @pytest.mark.asyncio
    async def test_result_during_toggle_leaves_torch_off(self, decoder, results):
        platform = FakePlatform(torch=True)
        platform.track.apply_gate = asyncio.Event()
        session = ScanSession(decoder, platform, results.append)
        await session.open()

        toggle = asyncio.create_task(session.toggle_torch())
        await asyncio.sleep(0)
        await decoder.decode("4607159730018")
        platform.track.apply_gate.set()

        assert await toggle is False
        assert session.status is SessionStatus.SUCCEEDED
        assert session.torch_on is False
        assert session.snapshot()["torch_on"] is False
        assert platform.track.stopped == 1

    @pytest.mark.asyncio
    async def test_restart_clears_torch_capability(self, decoder, results):
        platform = FakePlatform(torch=True)
        session = ScanSession(decoder, platform, results.append)
        await session.open()
        assert session.has_torch

        await session.request_manual_entry()
        assert session.has_torch is False

        platform.acquire_error = CaptureDeviceError("NotReadableError", "busy")
        await session.cancel_manual_entry()

        assert session.status is SessionStatus.SCANNING
        assert session.snapshot()["has_torch"] is False


class TestClose:
    @pytest.mark.asyncio
    async def test_idempotent_without_handle(self, make_session, decoder, closes):
        session = make_session()
        await session.close()
        await session.close()

        assert session.status is SessionStatus.CLOSED
        assert closes == [1]
        assert decoder.stop_calls == []

    @pytest.mark.asyncio
    async def test_releases_handle_and_stream(self, make_session, decoder, platform):
        session = make_session()
        await session.open()
        await session.close()

        assert decoder.opened[0].stopped
        assert platform.track.stopped == 1

    @pytest.mark.asyncio
    async def test_no_close_callback_after_result(self, make_session, decoder, closes):
        session = make_session()
        await session.open()
        await decoder.decode("12345670")
        await session.close()

        assert closes == []

    @pytest.mark.asyncio
    async def test_teardown_without_notify(self, make_session, closes):
        session = make_session()
        await session.open()
        await session.close(notify=False)

        assert session.is_closed
        assert closes == []

    @pytest.mark.asyncio
    async def test_context_manager(self, make_session, decoder, closes):
        async with make_session() as session:
            await session.open()

        assert session.is_closed
        assert decoder.opened[0].stopped
        assert closes == []

    @pytest.mark.asyncio
    async def test_close_during_open_stops_late_handle(self, make_session, decoder):
        decoder.open_gate = asyncio.Event()
        session = make_session()
        task = asyncio.create_task(session.open())

        while not decoder.open_calls:
            await asyncio.sleep(0)
        await session.close()
        decoder.open_gate.set()
        await task

        assert session.status is SessionStatus.CLOSED
        assert decoder.opened[0].stopped
        assert decoder.stop_calls == [decoder.opened[0]]
