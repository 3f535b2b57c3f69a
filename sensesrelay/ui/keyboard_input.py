"""Cross-platform keyboard input for the push-to-talk console."""

import sys
import threading
import time
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)

PUSH_TO_TALK_KEYS = (" ", "t", "\r")
QUIT_KEYS = ("q", "\x03")


class KeyboardInputHandler:
    """Push-to-talk console keys read on a background thread.

    Space, `t` or Enter toggle recording; `q` or Ctrl-C quits. Both
    callbacks run on the input thread.
    """

    def __init__(self, on_push_to_talk: Callable[[], None], on_quit: Callable[[], None]):
        self.on_push_to_talk = on_push_to_talk
        self.on_quit = on_quit
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the keyboard input handler."""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.name = "KeyboardInputThread"
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        """Stop the keyboard input handler."""
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        """Main input handling loop."""
        while self.running:
            key = self._get_key()
            if key and not self.handle_key(key):
                self.running = False
                break
            # Small delay to prevent busy waiting
            time.sleep(0.05)
        logger.info("Keyboard input loop ended")

    def handle_key(self, key: str) -> bool:
        """Act on one key. Returns False once quit was requested."""
        logger.debug(f"Key detected: {key!r}")
        if key in QUIT_KEYS:
            logger.info("Quit key pressed")
            self.on_quit()
            return False
        if key in PUSH_TO_TALK_KEYS:
            self.on_push_to_talk()
        return True

    def _get_key(self) -> Optional[str]:
        """Get a single keypress in a cross-platform way."""
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        if msvcrt.kbhit():
            return msvcrt.getch().decode('utf-8', errors='ignore').lower()
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import tty
        import termios

        if not sys.stdin.isatty():
            return None
        if select.select([sys.stdin], [], [], 0.1)[0]:
            old_settings = termios.tcgetattr(sys.stdin)
            try:
                tty.setraw(sys.stdin.fileno())
                return sys.stdin.read(1).lower()
            finally:
                termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)
        return None
