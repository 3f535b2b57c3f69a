"""Unit tests for the CaptureSession state machine."""

import asyncio

import pytest
from pubsub import pub

from sensesrelay.capture.session import CaptureSession
from sensesrelay.errors import CapabilityError
from sensesrelay.models.capture import CapturePhase, CaptureOutcome

from tests.fakes import FakeAudioInput, FakePermissions, FakeTranscriptionBackend


async def drain():
    """Let callbacks scheduled from worker threads run."""
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def make_session(fake_backend, fake_permissions, audio_inputs, fake_clock, topics):
    def build(backend=None, permissions=None, audio_factory=FakeAudioInput, tick_interval=10.0):
        return CaptureSession(
            backend=backend or fake_backend,
            permissions=permissions or fake_permissions,
            audio_factory=audio_factory,
            tick_interval=tick_interval,
            clock=fake_clock,
            topic=topics["capture"],
        )
    return build


@pytest.mark.unit
class TestCaptureSession:
    """Test cases for CaptureSession."""

    @pytest.mark.asyncio
    async def test_start_enters_recording(self, make_session, fake_backend, audio_inputs, fake_clock):
        session = make_session()

        assert session.start() is True

        assert session.state.phase is CapturePhase.RECORDING
        assert session.state.started_at == fake_clock.now
        assert fake_backend.start_calls == 1
        assert len(audio_inputs) == 1 and audio_inputs[0].started
        session.shutdown()

    @pytest.mark.asyncio
    async def test_start_twice_is_single_recording(self, make_session, fake_backend, audio_inputs):
        session = make_session()

        assert session.start() is True
        assert session.start() is False

        assert fake_backend.start_calls == 1
        assert len(audio_inputs) == 1
        assert session.is_recording
        session.shutdown()

    @pytest.mark.asyncio
    async def test_stop_while_idle_returns_empty(self, make_session, fake_backend):
        session = make_session()

        assert session.stop() == CaptureOutcome()
        assert fake_backend.stop_calls == 0
        assert fake_backend.cancel_calls == 0
        assert session.state.phase is CapturePhase.IDLE

    @pytest.mark.asyncio
    async def test_incremental_updates_replace_transcript(self, make_session, fake_backend, fake_clock):
        session = make_session()
        session.start()

        fake_backend.emit("hel")
        await drain()
        assert session.state.transcript == "hel"
        fake_backend.emit("hello")
        await drain()
        fake_clock.advance(2.0)

        outcome = session.stop()

        assert outcome.text == "hello"
        assert outcome.duration == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_stop_tears_everything_down(self, make_session, fake_backend, audio_inputs):
        session = make_session()
        session.start()

        session.stop()

        assert session.state.phase is CapturePhase.IDLE
        assert fake_backend.stop_calls == 1
        assert fake_backend.cancel_calls >= 1
        assert audio_inputs[0].stop_calls >= 1
        assert session._tick_task is None
        assert session._audio is None

    @pytest.mark.asyncio
    async def test_final_result_ends_session(self, make_session, fake_backend, audio_inputs):
        session = make_session()
        session.start()

        fake_backend.emit("all done", is_final=True)
        await drain()

        assert session.state.phase is CapturePhase.IDLE
        assert session.state.transcript == "all done"
        assert session.state.last_error is None
        assert audio_inputs[0].stop_calls >= 1

    @pytest.mark.asyncio
    async def test_recognition_error_ends_session(self, make_session, fake_backend, audio_inputs):
        session = make_session()
        session.start()

        fake_backend.fail("Speech recognition error: network")
        await drain()

        assert session.state.phase is CapturePhase.IDLE
        assert session.state.last_error == "Speech recognition error: network"
        assert audio_inputs[0].stop_calls >= 1
        assert fake_backend.cancel_calls >= 1

    @pytest.mark.asyncio
    async def test_stale_callbacks_ignored(self, make_session, fake_backend):
        session = make_session()
        session.start()
        old_update = fake_backend.on_update
        session.stop()

        session.start()
        fake_backend.on_update = old_update
        fake_backend.emit("from the past")
        await drain()

        assert session.state.transcript == ""
        session.shutdown()

    @pytest.mark.asyncio
    async def test_recognizer_unavailable(self, make_session, audio_inputs):
        session = make_session(backend=FakeTranscriptionBackend(available=False))

        assert session.start() is False

        assert session.state.phase is CapturePhase.IDLE
        assert session.state.last_error == "Speech recognizer unavailable"
        assert audio_inputs == []

    @pytest.mark.asyncio
    async def test_engine_start_failure_releases_audio(self, make_session, audio_inputs):
        session = make_session(audio_factory=lambda: FakeAudioInput(fail_start="Engine start error: busy"))

        assert session.start() is False

        assert session.state.phase is CapturePhase.IDLE
        assert session.state.last_error == "Engine start error: busy"
        assert audio_inputs[0].stop_calls == 1
        assert session._audio is None

    @pytest.mark.asyncio
    async def test_recognition_task_failure_releases_audio(self, make_session, audio_inputs):
        backend = FakeTranscriptionBackend(fail_start="Recognition task already running")
        session = make_session(backend=backend)

        assert session.start() is False

        assert session.state.last_error == "Recognition task already running"
        assert audio_inputs[0].stop_calls == 1

    @pytest.mark.asyncio
    async def test_new_start_clears_error(self, make_session, fake_backend):
        session = make_session()
        session.start()
        fake_backend.fail("boom")
        await drain()
        assert session.state.last_error == "boom"

        session.start()

        assert session.state.last_error is None
        session.shutdown()

    @pytest.mark.asyncio
    async def test_teardown_is_repeatable(self, make_session, fake_backend):
        session = make_session()
        session.start()

        session.shutdown()
        session.shutdown()
        session._teardown()

        assert session.state.phase is CapturePhase.IDLE

    @pytest.mark.asyncio
    async def test_duration_ticks(self, make_session, fake_clock):
        session = make_session(tick_interval=0.01)
        session.start()

        fake_clock.advance(1.25)
        await asyncio.sleep(0.05)

        assert session.state.duration == pytest.approx(1.25)
        session.shutdown()

    @pytest.mark.asyncio
    async def test_permission_denied_recorded(self, make_session):
        session = make_session(permissions=FakePermissions(granted=False))

        assert await session.request_permissions() is False

        assert session.state.phase is CapturePhase.IDLE
        assert session.state.last_error == "Microphone permission denied"

    @pytest.mark.asyncio
    async def test_capture_for_times_out_and_stops(self, make_session, fake_backend):
        session = make_session()
        task = asyncio.ensure_future(session.capture_for(0.05))
        await drain()
        fake_backend.emit("relay words")

        outcome = await task

        assert outcome.text == "relay words"
        assert session.state.phase is CapturePhase.IDLE

    @pytest.mark.asyncio
    async def test_capture_for_ends_early_on_final(self, make_session, fake_backend):
        session = make_session()
        task = asyncio.ensure_future(session.capture_for(30))
        await drain()

        fake_backend.emit("short", is_final=True)
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome.text == "short"

    @pytest.mark.asyncio
    async def test_capture_for_raises_on_recognition_error(self, make_session, fake_backend):
        session = make_session()
        task = asyncio.ensure_future(session.capture_for(30))
        await drain()

        fake_backend.fail("Speech recognition error: quota")

        with pytest.raises(CapabilityError, match="quota"):
            await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_capture_for_while_recording(self, make_session):
        session = make_session()
        session.start()

        with pytest.raises(CapabilityError, match="already in progress"):
            await session.capture_for(1)
        session.shutdown()

    @pytest.mark.asyncio
    async def test_capture_for_permission_denied(self, make_session):
        session = make_session(permissions=FakePermissions(granted=False))

        with pytest.raises(CapabilityError, match="Microphone permission denied"):
            await session.capture_for(1)

    @pytest.mark.asyncio
    async def test_state_published(self, make_session, topics):
        received = []

        def listener(state):
            received.append(state.phase)

        pub.subscribe(listener, topics["capture"])
        session = make_session()
        session.start()
        session.stop()

        assert received == [CapturePhase.RECORDING, CapturePhase.FINALIZING, CapturePhase.IDLE]

    @pytest.mark.asyncio
    async def test_tick_reports_input_level(self, make_session, audio_inputs):
        session = make_session(tick_interval=0.01)
        session.start()
        audio_inputs[0].peak_level = 0.3

        await asyncio.sleep(0.05)

        assert session.state.input_level == pytest.approx(0.3)
        session.shutdown()
