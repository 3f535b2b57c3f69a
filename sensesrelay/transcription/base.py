"""Abstract base classes for streaming transcription backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptUpdate:
    """Incremental recognition result.

    ``text`` is always the full current best guess for the session, not a
    delta. ``is_final`` marks the last update of a session.
    """
    text: str
    is_final: bool = False


UpdateCallback = Callable[[TranscriptUpdate], None]
ErrorCallback = Callable[[str], None]


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for streaming transcription backends.

    Callbacks may be invoked from any thread; callers that own shared state
    must marshal them back to their own control thread.
    """

    def __init__(self, language: str = "en-US"):
        """Initialize backend with language preference."""
        self.language = language

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the recognizer can currently be used."""
        pass

    @abstractmethod
    def start(self,
              audio_chunks: Iterable[bytes],
              on_update: UpdateCallback,
              on_error: ErrorCallback) -> None:
        """Begin recognizing ``audio_chunks``.

        Args:
            audio_chunks: Blocking iterable of raw 16-bit PCM chunks; the
                recognition session ends when it is exhausted
            on_update: Called with every partial and the final result
            on_error: Called once with a diagnostic if recognition fails

        Raises:
            CapabilityError: If the recognition task cannot be created
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Signal end of input; a final update may still follow."""
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Abandon the recognition task; no further callbacks are delivered."""
        pass
