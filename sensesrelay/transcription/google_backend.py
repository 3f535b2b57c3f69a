"""Google Speech-to-Text streaming transcription backend."""

import logging
import threading
from typing import Iterable, List, Optional

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.oauth2 import service_account

from .base import AbstractTranscriptionBackend, TranscriptUpdate, UpdateCallback, ErrorCallback
from ..errors import CapabilityError

logger = logging.getLogger(__name__)


class GoogleStreamingBackend(AbstractTranscriptionBackend):
    """Google streaming recognition with interim results.

    Google reports each utterance segment separately; finalized segments
    are kept and joined with the in-progress one so every update carries
    the full text recognized so far.
    """

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True):
        """Initialize Google streaming backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            sample_rate: Sample rate of the PCM audio in Hz
            language: Language code (e.g., 'en-US', 'es-ES')
            enable_automatic_punctuation: Enable automatic punctuation
        """
        super().__init__(language)
        self.credentials_path = credentials_path
        self.client: Optional[speech.SpeechClient] = None
        self.service_name = "Google Speech-to-Text"
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=sample_rate,
                language_code=self.language,
                enable_automatic_punctuation=enable_automatic_punctuation,
            ),
            interim_results=True,
        )

        self._worker: Optional[threading.Thread] = None
        self._input_closed = threading.Event()
        self._cancelled = threading.Event()
        self._responses = None

    def initialize(self) -> bool:
        """Create the Speech client from the service account file.

        Raises:
            CapabilityError: If credentials are missing or invalid
        """
        if not self.credentials_path:
            raise CapabilityError("Speech recognizer unavailable: no credentials configured")
        logger.info(f"Loading Google credentials from: {self.credentials_path}")
        try:
            credentials = service_account.Credentials.from_service_account_file(self.credentials_path)
        except (OSError, ValueError, auth_exceptions.GoogleAuthError) as e:
            raise CapabilityError(f"Speech recognizer unavailable: {e}") from e
        self.client = speech.SpeechClient(credentials=credentials)
        logger.info(f"Using Google Cloud project: {credentials.project_id}")
        return True

    def is_available(self) -> bool:
        return self.client is not None

    def start(self,
              audio_chunks: Iterable[bytes],
              on_update: UpdateCallback,
              on_error: ErrorCallback) -> None:
        if self.client is None:
            raise CapabilityError("Speech recognizer unavailable")
        if self._worker is not None and self._worker.is_alive():
            raise CapabilityError("Recognition task already running")

        self._input_closed.clear()
        self._cancelled.clear()
        self._worker = threading.Thread(
            target=self._recognize,
            args=(audio_chunks, on_update, on_error),
            daemon=True,
        )
        self._worker.name = "GoogleStreamingRecognizer"
        self._worker.start()
        logger.info("Google streaming recognition started")

    def stop(self) -> None:
        self._input_closed.set()

    def cancel(self) -> None:
        self._cancelled.set()
        self._input_closed.set()
        responses = self._responses
        if responses is not None and hasattr(responses, "cancel"):
            responses.cancel()
        self._worker = None

    def _requests(self, audio_chunks: Iterable[bytes]):
        for chunk in audio_chunks:
            if self._input_closed.is_set():
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _recognize(self, audio_chunks, on_update: UpdateCallback, on_error: ErrorCallback) -> None:
        """Worker thread: stream audio and report transcripts."""
        finalized: List[str] = []
        interim = ""
        try:
            self._responses = self.client.streaming_recognize(
                config=self.streaming_config,
                requests=self._requests(audio_chunks),
            )
            for response in self._responses:
                if self._cancelled.is_set():
                    return
                for result in response.results:
                    if not result.alternatives:
                        continue
                    transcript = result.alternatives[0].transcript.strip()
                    if result.is_final:
                        finalized.append(transcript)
                        interim = ""
                    else:
                        interim = transcript
                on_update(TranscriptUpdate(text=_join(finalized, interim)))
        except gax_exceptions.Cancelled:
            logger.debug("Google streaming recognition cancelled")
            return
        except gax_exceptions.GoogleAPICallError as e:
            if not self._cancelled.is_set():
                logger.error(f"Google streaming recognition failed: {e}")
                on_error(f"Speech recognition error: {e}")
            return
        finally:
            self._responses = None

        if not self._cancelled.is_set():
            on_update(TranscriptUpdate(text=_join(finalized, interim), is_final=True))

    def cleanup(self) -> None:
        """Release the Speech client."""
        self.cancel()
        if self.client is not None:
            self.client.transport.close()
            self.client = None


def _join(finalized: List[str], interim: str) -> str:
    parts = [part for part in finalized + [interim] if part]
    return " ".join(parts)
