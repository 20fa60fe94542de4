"""Single-key terminal input for the console app."""

import sys
import threading
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)


class KeyboardInputHandler:
    """Reads single keypresses on a background thread.

    The callback runs on the reader thread; callers hop onto their event
    loop themselves.
    """

    def __init__(self, callback: Callable[[str], bool], poll_interval_s: float = 0.1):
        """Initialize keyboard handler.

        Args:
            callback: Function that takes a key and returns True to continue, False to quit
            poll_interval_s: How long each read waits for input
        """
        self.callback = callback
        self.poll_interval_s = poll_interval_s
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the keyboard input handler."""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, name="keyboard-input", daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        """Stop the keyboard input handler."""
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        logger.debug("Starting keyboard input loop")
        while self.running:
            try:
                key = self._get_key()
            except OSError as e:
                logger.error(f"Keyboard input error: {e}")
                break
            if key and not self.callback(key):
                logger.info("Quit requested from keyboard")
                break
        self.running = False
        logger.debug("Keyboard input loop ended")

    def _get_key(self) -> Optional[str]:
        if sys.platform == "win32":
            return self._get_key_windows()
        return self._get_key_unix()

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt
        import time

        if msvcrt.kbhit():
            return msvcrt.getwch().lower()
        time.sleep(self.poll_interval_s)
        return None

    def _get_key_unix(self) -> Optional[str]:
        import select
        import termios
        import tty

        if not sys.stdin.isatty():
            line = sys.stdin.readline()
            if not line:
                return "q"
            return (line.strip() or " ")[0].lower()

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)
            if select.select([sys.stdin], [], [], self.poll_interval_s)[0]:
                key = sys.stdin.read(1)
                logger.debug(f"Raw key read: {key!r}")
                return key.lower()
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
        return None
