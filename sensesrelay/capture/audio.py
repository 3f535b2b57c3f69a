"""Microphone input pipeline feeding the transcription capability."""

import queue
import logging
from threading import Thread, Event
from typing import Iterator, Optional

import numpy as np
import pyaudio

from ..errors import CapabilityError

logger = logging.getLogger(__name__)


class AudioInput:
    """PyAudio input stream read on a background thread.

    Chunks are handed out through ``chunks()``, a blocking iterator that ends
    once ``stop()`` has been called. One instance backs exactly one Recording
    phase.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
        max_queued_chunks: int = 200,
    ):
        """Initialize the audio input.

        Args:
            sample_rate: Audio sample rate (16kHz for speech recognition)
            chunk_size: Size of each audio chunk in samples
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
            max_queued_chunks: Chunks kept before the oldest is dropped
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self.chunk_queue: "queue.Queue[Optional[bytes]]" = queue.Queue(maxsize=max_queued_chunks)
        self.stop_event = Event()
        self.reader_thread: Optional[Thread] = None
        self.is_running = False

        self.total_chunks = 0
        self.dropped_chunks = 0
        self.peak_level = 0.0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    def start(self) -> None:
        """Open the input device and start reading.

        Raises:
            CapabilityError: If the device cannot be opened
        """
        if self.is_running:
            logger.warning("Audio input already running")
            return

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size,
            )
        except (OSError, IOError) as e:
            self.stop()
            raise CapabilityError(f"Engine start error: {e}") from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")
        self.stop_event.clear()
        self.is_running = True
        self.reader_thread = Thread(target=self._read_continuously, daemon=True)
        self.reader_thread.name = "AudioInputThread"
        self.reader_thread.start()

    def stop(self) -> None:
        """Stop reading and release the device. Safe to call repeatedly."""
        self.stop_event.set()

        if self.reader_thread and self.reader_thread.is_alive():
            self.reader_thread.join(timeout=2.0)
            if self.reader_thread.is_alive():
                logger.warning("Audio input thread did not stop cleanly")
        self.reader_thread = None

        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None

        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

        if self.is_running:
            logger.info(f"Audio input stopped. Total chunks: {self.total_chunks}")
        self.is_running = False
        self._put_chunk(None)

    def chunks(self) -> Iterator[bytes]:
        """Yield audio chunks until the input is stopped."""
        while True:
            chunk = self.chunk_queue.get()
            if chunk is None:
                return
            yield chunk

    def _read_continuously(self) -> None:
        """Internal method: read loop running on the background thread."""
        while not self.stop_event.is_set():
            try:
                chunk = self.stream.read(self.chunk_size, exception_on_overflow=False)
            except (OSError, IOError, AttributeError) as e:
                if not self.stop_event.is_set():
                    logger.error(f"Audio read failed: {e}")
                break
            self.total_chunks += 1
            self._update_peak_level(chunk)
            self._put_chunk(chunk)
        # End of input for whoever is consuming chunks().
        self._put_chunk(None)

    def _put_chunk(self, chunk: Optional[bytes]) -> None:
        while True:
            try:
                self.chunk_queue.put_nowait(chunk)
                return
            except queue.Full:
                try:
                    self.chunk_queue.get_nowait()
                    self.dropped_chunks += 1
                except queue.Empty:
                    pass

    def _update_peak_level(self, chunk: bytes) -> None:
        samples = np.frombuffer(chunk, dtype=np.int16)
        if samples.size:
            self.peak_level = float(np.abs(samples.astype(np.int32)).max()) / 32768.0


def find_input_device(pyaudio_instance: "pyaudio.PyAudio") -> Optional[int]:
    """Return the index of the first device with input channels."""
    for i in range(pyaudio_instance.get_device_count()):
        info = pyaudio_instance.get_device_info_by_index(i)
        if info.get("maxInputChannels", 0) > 0:
            return i
    return None
