"""Capture session state machine models."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union


class CapturePhase(Enum):
    """Phase of a push-to-talk capture session."""
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class CaptureState:
    """Snapshot of a capture session."""
    phase: CapturePhase = CapturePhase.IDLE
    transcript: str = ""
    started_at: Optional[float] = None
    duration: float = 0.0
    last_error: Optional[str] = None
    input_level: float = 0.0

    @property
    def is_recording(self) -> bool:
        return self.phase is CapturePhase.RECORDING


@dataclass(frozen=True)
class CaptureOutcome:
    """Text and duration captured when a session is stopped."""
    text: str = ""
    duration: float = 0.0


@dataclass(frozen=True)
class RecordingStarted:
    at: float


@dataclass(frozen=True)
class TranscriptUpdated:
    text: str


@dataclass(frozen=True)
class DurationTick:
    now: float
    level: float = 0.0


@dataclass(frozen=True)
class StopRequested:
    now: float


@dataclass(frozen=True)
class TeardownFinished:
    pass


@dataclass(frozen=True)
class CaptureFailed:
    error: str


@dataclass(frozen=True)
class ErrorCleared:
    pass


CaptureEvent = Union[
    RecordingStarted,
    TranscriptUpdated,
    DurationTick,
    StopRequested,
    TeardownFinished,
    CaptureFailed,
    ErrorCleared,
]


def reduce_capture(state: CaptureState, event: CaptureEvent) -> CaptureState:
    """Apply one event to a capture session.

    Only Idle -> Recording -> Finalizing -> Idle is reachable. Events that do
    not apply to the current phase return the state unchanged.
    """
    phase = state.phase

    if isinstance(event, RecordingStarted):
        if phase is not CapturePhase.IDLE:
            return state
        return CaptureState(phase=CapturePhase.RECORDING, started_at=event.at)

    if isinstance(event, TranscriptUpdated):
        if phase is not CapturePhase.RECORDING:
            return state
        # The recognizer always reports the full best guess.
        return replace(state, transcript=event.text)

    if isinstance(event, DurationTick):
        if phase is not CapturePhase.RECORDING or state.started_at is None:
            return state
        return replace(state, duration=max(0.0, event.now - state.started_at), input_level=event.level)

    if isinstance(event, StopRequested):
        if phase is not CapturePhase.RECORDING:
            return state
        duration = state.duration
        if state.started_at is not None:
            duration = max(0.0, event.now - state.started_at)
        return replace(state, phase=CapturePhase.FINALIZING, duration=duration)

    if isinstance(event, TeardownFinished):
        if phase is CapturePhase.IDLE:
            return state
        return replace(state, phase=CapturePhase.IDLE)

    if isinstance(event, CaptureFailed):
        return replace(state, phase=CapturePhase.IDLE, last_error=event.error)

    if isinstance(event, ErrorCleared):
        return replace(state, last_error=None)

    raise TypeError(f"Unknown capture event: {event!r}")
