"""Unit tests for AudioInput using a mocked PyAudio."""

import struct

import pytest

from sensesrelay.capture.audio import AudioInput, find_input_device
from sensesrelay.errors import CapabilityError


@pytest.mark.unit
class TestAudioInput:
    """Test cases for AudioInput."""

    def test_start_opens_stream(self, mock_pyaudio):
        audio = AudioInput(sample_rate=16000, chunk_size=1024)

        audio.start()
        try:
            assert audio.is_running
            kwargs = mock_pyaudio['instance'].open.call_args.kwargs
            assert kwargs['rate'] == 16000
            assert kwargs['input'] is True
            assert kwargs['frames_per_buffer'] == 1024
        finally:
            audio.stop()

    def test_stop_releases_device(self, mock_pyaudio):
        audio = AudioInput()
        audio.start()

        audio.stop()
        audio.stop()

        assert not audio.is_running
        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_chunks_end_after_stop(self, mock_pyaudio):
        audio = AudioInput(chunk_size=1024)
        audio.start()
        chunks = audio.chunks()

        first = next(chunks)
        audio.stop()
        rest = list(chunks)

        assert first == b'\x00' * 2048
        assert all(chunk == b'\x00' * 2048 for chunk in rest)

    def test_open_failure_raises_capability_error(self, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = OSError("Device unavailable")
        audio = AudioInput()

        with pytest.raises(CapabilityError, match="Engine start error"):
            audio.start()

        assert not audio.is_running
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_full_queue_drops_oldest(self):
        audio = AudioInput(max_queued_chunks=2)

        for chunk in [b'a', b'b', b'c']:
            audio._put_chunk(chunk)

        assert audio.dropped_chunks == 1
        assert audio.chunk_queue.get_nowait() == b'b'

    def test_peak_level(self):
        audio = AudioInput()
        audio._update_peak_level(struct.pack('<4h', 0, 100, -16384, 50))
        assert audio.peak_level == pytest.approx(0.5)

    def test_find_input_device(self, mock_pyaudio):
        instance = mock_pyaudio['instance']
        assert find_input_device(instance) == 0

        instance.get_device_info_by_index.return_value = {"name": "Speaker", "maxInputChannels": 0}
        assert find_input_device(instance) is None
