"""Unit tests for application wiring and logging setup."""

import concurrent.futures
import logging
from unittest.mock import Mock, patch

import pytest

from sensesrelay.main import Server, _log_toggle_failure, setup_logging
from sensesrelay.config import SensesRelayConfig


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "relay:\n"
        "  base_url: http://localhost:9999\n"
        "logging:\n"
        "  file_path: logs/test.log\n"
        "  console_output: false\n"
    )
    return path


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_file_handler_created(self, config_file, tmp_path):
        setup_logging(SensesRelayConfig(str(config_file)), "DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert (tmp_path / "logs" / "test.log").exists()


@pytest.mark.unit
class TestServerKeys:
    """Test cases for keyboard handling in Server."""

    @pytest.fixture
    def server(self, config_file):
        server = Server(str(config_file))
        server._loop = Mock()
        server._stop_requested = Mock()
        server.dispatcher = Mock()
        return server

    def test_quit_key_requests_stop(self, server):
        server._on_quit_key()
        server._loop.call_soon_threadsafe.assert_called_once_with(server._stop_requested.set)

    def test_push_to_talk_key_schedules_toggle(self, server):
        with patch('sensesrelay.main.asyncio.run_coroutine_threadsafe') as run:
            server._on_push_to_talk_key()

        run.assert_called_once_with(server.dispatcher.toggle_push_to_talk.return_value, server._loop)
        run.return_value.add_done_callback.assert_called_once_with(_log_toggle_failure)

    def test_toggle_failure_logged(self, caplog):
        future = concurrent.futures.Future()
        future.set_exception(RuntimeError("mic gone"))

        with caplog.at_level(logging.ERROR, logger='sensesrelay.main'):
            _log_toggle_failure(future)

        assert "Push-to-talk failed: mic gone" in caplog.text

    def test_successful_toggle_not_logged(self, caplog):
        future = concurrent.futures.Future()
        future.set_result(None)

        with caplog.at_level(logging.ERROR, logger='sensesrelay.main'):
            _log_toggle_failure(future)

        assert caplog.text == ""
