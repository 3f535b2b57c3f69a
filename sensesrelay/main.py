"""Main application entry point for SensesRelay."""

import sys
import asyncio
import argparse
import concurrent.futures
import functools
import logging
from pathlib import Path
from typing import Optional

from .capture.audio import AudioInput
from .capture.permissions import DevicePermissions
from .capture.session import CaptureSession
from .config import SensesRelayConfig
from .dispatch.dispatcher import Dispatcher
from .errors import CapabilityError
from .relay.client import RelayClient
from .transcription.google_backend import GoogleStreamingBackend
from .ui.keyboard_input import KeyboardInputHandler
from .ui.status_screen import StatusScreen

logger = logging.getLogger(__name__)


class Server:
    """Owns the relay client, capture session and dispatcher for one process."""

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = SensesRelayConfig(config_path)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)

        self.client: Optional[RelayClient] = None
        self.session: Optional[CaptureSession] = None
        self.dispatcher: Optional[Dispatcher] = None
        self.backend: Optional[GoogleStreamingBackend] = None
        self.screen: Optional[StatusScreen] = None
        self.keyboard: Optional[KeyboardInputHandler] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def init(self) -> None:
        """Build every component from configuration."""
        logger.info("Initializing services...")

        credentials_path = self.config.get('google_cloud.credentials_path')
        sample_rate = self.config.get('capture.sample_rate', 16000)

        self.backend = GoogleStreamingBackend(
            credentials_path=credentials_path,
            sample_rate=sample_rate,
            language=self.config.get('google_cloud.language', 'en-US'),
            enable_automatic_punctuation=self.config.get('google_cloud.enable_automatic_punctuation', True),
        )
        try:
            self.backend.initialize()
        except CapabilityError as e:
            # Recording fails with a diagnostic; the relay connection still runs.
            logger.warning(f"Transcription unavailable: {e}")

        audio_factory = functools.partial(
            AudioInput,
            sample_rate=sample_rate,
            chunk_size=self.config.get('capture.chunk_size', 1024),
            channels=self.config.get('capture.channels', 1),
        )
        self.session = CaptureSession(
            backend=self.backend,
            permissions=DevicePermissions(credentials_path=credentials_path),
            audio_factory=audio_factory,
            tick_interval=self.config.get('capture.tick_interval_seconds', 0.05),
        )
        self.client = RelayClient(
            base_url=self.config.get('relay.base_url'),
            token=self.config.get('relay.token'),
            reconnect_delay=self.config.get('relay.reconnect_delay_seconds', 3.0),
        )
        self.dispatcher = Dispatcher(
            client=self.client,
            session=self.session,
            default_seconds=self.config.get('capture.default_seconds', 5.0),
            sent_display_seconds=self.config.get('ui.sent_display_seconds', 3.0),
        )
        self.screen = StatusScreen()
        self.keyboard = KeyboardInputHandler(
            on_push_to_talk=self._on_push_to_talk_key,
            on_quit=self._on_quit_key,
        )

    async def run(self) -> None:
        """Connect and serve until quit is requested."""
        self._loop = asyncio.get_running_loop()
        self._stop_requested = asyncio.Event()
        try:
            self.client.start()
            self.screen.start()
            self.keyboard.start()
            while not self._stop_requested.is_set():
                self.screen.set_recently_sent(self.dispatcher.recently_sent)
                try:
                    await asyncio.wait_for(self._stop_requested.wait(), timeout=0.25)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        if self.keyboard:
            self.keyboard.stop()
        if self.dispatcher:
            await self.dispatcher.shutdown()
        if self.session:
            self.session.shutdown()
        if self.client:
            await self.client.shutdown()
        if self.screen:
            self.screen.stop()
        if self.backend:
            self.backend.cleanup()
        logger.info("SensesRelay stopped")

    def _on_quit_key(self) -> None:
        self._loop.call_soon_threadsafe(self._stop_requested.set)

    def _on_push_to_talk_key(self) -> None:
        """Keyboard thread callback; hands the toggle to the event loop."""
        future = asyncio.run_coroutine_threadsafe(self.dispatcher.toggle_push_to_talk(), self._loop)
        future.add_done_callback(_log_toggle_failure)


def _log_toggle_failure(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Push-to-talk failed: {error}", exc_info=error)


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/sensesrelay.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("SensesRelay starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def main() -> None:
    """Main entry point for SensesRelay."""
    parser = argparse.ArgumentParser(
        description="SensesRelay - relay client with push-to-talk transcription",
        epilog="Keys: space/t=start or send recording, q=quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="SensesRelay v0.1.0"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init()
        asyncio.run(server.run())
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
