"""Pytest configuration and fixtures for SensesRelay tests."""

import itertools
import logging
from unittest.mock import Mock, patch

import pytest
from pubsub import pub

from tests.fakes import FakeAudioInput, FakePermissions, FakeTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_topic_counter = itertools.count()


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")


@pytest.fixture(autouse=True)
def clean_pubsub():
    """Drop every pub/sub listener a test registered."""
    yield
    pub.unsubAll()


@pytest.fixture
def topics():
    """Unique pub/sub topic names so tests never see each other's messages."""
    n = next(_topic_counter)
    return {
        "state": f"test{n}.connection",
        "request": f"test{n}.request",
        "capture": f"test{n}.capture",
    }


@pytest.fixture
def fake_backend():
    return FakeTranscriptionBackend()


@pytest.fixture
def fake_permissions():
    return FakePermissions()


@pytest.fixture
def audio_inputs():
    """Factory for fake audio inputs; the list records every one created."""
    FakeAudioInput.instances = []
    return FakeAudioInput.instances


@pytest.fixture
def fake_clock():
    """Manually advanced monotonic clock."""
    class Clock:
        def __init__(self):
            self.now = 100.0

        def __call__(self):
            return self.now

        def advance(self, seconds: float) -> None:
            self.now += seconds

    return Clock()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_device_count.return_value = 1
        mock_pyaudio_instance.get_device_info_by_index.return_value = {
            "name": "USB Mic", "maxInputChannels": 1
        }

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
