"""Push-to-talk capture session driving the microphone and recognizer."""

import asyncio
import logging
import time
from typing import Callable, Optional

from pubsub import pub

from .audio import AudioInput
from .permissions import DevicePermissions
from ..errors import CapabilityError
from ..publisher import install_listener_exc_handler
from ..models.capture import (
    CapturePhase,
    CaptureState,
    CaptureOutcome,
    CaptureEvent,
    RecordingStarted,
    TranscriptUpdated,
    DurationTick,
    StopRequested,
    TeardownFinished,
    CaptureFailed,
    ErrorCleared,
    reduce_capture,
)
from ..transcription.base import AbstractTranscriptionBackend, TranscriptUpdate

logger = logging.getLogger(__name__)

CAPTURE_STATE_TOPIC = "capture.state"


class CaptureSession:
    """Idle -> Recording -> Finalizing -> Idle state machine.

    All state changes happen on the event loop that called ``start()``.
    Recognizer callbacks arrive on worker threads and are re-scheduled onto
    that loop. The audio input and recognition task exist only while
    Recording and are torn down on every exit path.
    """

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 permissions: DevicePermissions,
                 audio_factory: Callable[[], AudioInput] = AudioInput,
                 tick_interval: float = 0.05,
                 clock: Callable[[], float] = time.monotonic,
                 topic: str = CAPTURE_STATE_TOPIC):
        """Initialize capture session.

        Args:
            backend: Streaming transcription capability
            permissions: Permission capability for microphone and recognizer
            audio_factory: Builds a fresh audio input for each recording
            tick_interval: Seconds between duration updates while recording
            clock: Monotonic time source
            topic: Pub/sub topic on which state snapshots are published
        """
        self.backend = backend
        self.permissions = permissions
        self.audio_factory = audio_factory
        self.tick_interval = tick_interval
        self.clock = clock
        self.topic = topic

        self._state = CaptureState()
        self._audio: Optional[AudioInput] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._generation = 0
        self._ended: Optional[asyncio.Event] = None

        install_listener_exc_handler()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state.is_recording

    def has_permission(self) -> bool:
        return self.permissions.has_permission()

    async def request_permissions(self) -> bool:
        """Ask for microphone and recognizer access; record a diagnostic on denial."""
        granted = await self.permissions.request_permissions()
        if not granted and not self.is_recording:
            self._dispatch(CaptureFailed(self.permissions.last_error or "Permission denied"))
        return granted

    def start(self) -> bool:
        """Enter Recording. Must be called from the event loop.

        Returns:
            True if a recording started, False if one was already running or
            setup failed (the diagnostic is in ``state.last_error``)
        """
        if self._state.phase is not CapturePhase.IDLE:
            logger.warning("Capture already in progress")
            return False

        self._loop = asyncio.get_running_loop()
        if not self.backend.is_available():
            self._fail("Speech recognizer unavailable")
            return False

        self._dispatch(ErrorCleared())
        self._generation += 1
        generation = self._generation
        self._audio = self.audio_factory()
        try:
            self._audio.start()
            self.backend.start(
                self._audio.chunks(),
                on_update=lambda update: self._from_worker(self._on_update, generation, update),
                on_error=lambda message: self._from_worker(self._on_error, generation, message),
            )
        except CapabilityError as e:
            logger.error(f"Capture setup failed: {e}")
            self._teardown()
            self._fail(str(e))
            return False

        self._ended = asyncio.Event()
        self._dispatch(RecordingStarted(at=self.clock()))
        self._tick_task = self._loop.create_task(self._tick())
        logger.info("Recording started")
        return True

    def stop(self) -> CaptureOutcome:
        """Finish the recording and return what was captured.

        Does not suspend. Returns an empty outcome when not Recording.
        """
        if not self.is_recording:
            return CaptureOutcome()
        self.backend.stop()
        return self._finish()

    async def capture_for(self, seconds: float) -> CaptureOutcome:
        """Record for ``seconds`` (or until the recognizer ends the session).

        Raises:
            CapabilityError: If permission is denied, a capture is already
                running, or recognition fails
        """
        if not self.has_permission():
            if not await self.request_permissions():
                raise CapabilityError(self._state.last_error or "Permission denied")
        if not self.start():
            raise CapabilityError(self._state.last_error or "Capture already in progress")

        ended = self._ended
        try:
            await asyncio.wait_for(ended.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return self.stop()

        if self._state.last_error:
            raise CapabilityError(self._state.last_error)
        return CaptureOutcome(text=self._state.transcript, duration=self._state.duration)

    def shutdown(self) -> None:
        """Tear down any active recording without returning its result."""
        if self.is_recording:
            self._finish()
        else:
            self._teardown()

    def _finish(self) -> CaptureOutcome:
        self._dispatch(StopRequested(now=self.clock()))
        outcome = CaptureOutcome(text=self._state.transcript, duration=self._state.duration)
        self._teardown()
        self._dispatch(TeardownFinished())
        logger.info(f"Recording finished: {outcome.duration:.1f}s, {len(outcome.text)} chars")
        return outcome

    def _fail(self, message: str) -> None:
        self._dispatch(CaptureFailed(message))

    def _teardown(self) -> None:
        """Release the audio input and recognition task. Idempotent."""
        self._generation += 1
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None
        if self._audio is not None:
            self._audio.stop()
            self._audio = None
        self.backend.cancel()
        if self._ended is not None:
            self._ended.set()

    def _on_update(self, generation: int, update: TranscriptUpdate) -> None:
        if generation != self._generation or not self.is_recording:
            return
        self._dispatch(TranscriptUpdated(update.text))
        if update.is_final:
            logger.info("Recognizer finished the session")
            self._finish()

    def _on_error(self, generation: int, message: str) -> None:
        if generation != self._generation or not self.is_recording:
            return
        logger.error(message)
        self._teardown()
        self._fail(message)

    def _from_worker(self, callback, *args) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed; dropping recognizer callback")

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            level = self._audio.peak_level if self._audio is not None else 0.0
            self._dispatch(DurationTick(now=self.clock(), level=level))

    def _dispatch(self, event: CaptureEvent) -> None:
        new_state = reduce_capture(self._state, event)
        if new_state == self._state:
            return
        self._state = new_state
        pub.sendMessage(self.topic, state=new_state)
