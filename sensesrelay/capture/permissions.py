"""Permission capability for microphone and speech recognition access."""

import asyncio
import logging
import os
from typing import Callable, Optional

import pyaudio

from .audio import find_input_device

logger = logging.getLogger(__name__)

MICROPHONE_DENIED = "Microphone permission denied"
SPEECH_DENIED = "Speech recognition permission denied"


class DevicePermissions:
    """Checks that the microphone and the recognizer may be used.

    On a desktop there is no consent dialog: the microphone counts as
    granted when an input device can be enumerated, and recognition counts
    as granted when the credentials file is readable.
    """

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 pyaudio_factory: Callable[[], "pyaudio.PyAudio"] = pyaudio.PyAudio):
        self.credentials_path = credentials_path
        self.pyaudio_factory = pyaudio_factory
        self.last_error: Optional[str] = None
        self._granted: Optional[bool] = None

    def has_permission(self) -> bool:
        """Return the result of the last probe (False if never probed)."""
        return bool(self._granted)

    async def request_permissions(self) -> bool:
        """Probe microphone and recognizer access off the event loop.

        Returns:
            True if both are usable; otherwise False with ``last_error`` set
        """
        loop = asyncio.get_running_loop()
        granted = await loop.run_in_executor(None, self._probe)
        self._granted = granted
        return granted

    def _probe(self) -> bool:
        self.last_error = None
        if not self._microphone_available():
            self.last_error = MICROPHONE_DENIED
            logger.warning(MICROPHONE_DENIED)
            return False
        if not self._speech_available():
            self.last_error = SPEECH_DENIED
            logger.warning(SPEECH_DENIED)
            return False
        logger.info("Microphone and speech recognition permissions granted")
        return True

    def _microphone_available(self) -> bool:
        try:
            instance = self.pyaudio_factory()
        except OSError as e:
            logger.debug(f"PyAudio unavailable: {e}")
            return False
        try:
            return find_input_device(instance) is not None
        finally:
            instance.terminate()

    def _speech_available(self) -> bool:
        if not self.credentials_path:
            return False
        return os.path.isfile(self.credentials_path) and os.access(self.credentials_path, os.R_OK)
