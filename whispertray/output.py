"""
Output functions for the clipboard and pasting into the focused window.
"""

import logging
import sys
import time
from typing import Optional

from .errors import DeliveryFailed

logger = logging.getLogger(__name__)


PASTE_DELAY_SECONDS = 0.05  # Let the clipboard owner settle before pasting


def get_clipboard() -> Optional[str]:
    """
    Get text from the system clipboard.

    Returns:
        Clipboard contents, or None if unavailable or empty
    """
    import pyperclip

    try:
        text = pyperclip.paste()
    except pyperclip.PyperclipException as e:
        logger.warning("[output] Clipboard read failed: %s", e)
        return None
    return text or None


def copy_to_clipboard(text: str) -> None:
    """
    Copy text to the system clipboard.

    Raises:
        DeliveryFailed: if no clipboard mechanism is available
    """
    import pyperclip

    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise DeliveryFailed(f"Clipboard write failed: {e}") from e


def send_paste_keystroke() -> None:
    """Press the platform paste shortcut (Cmd+V on macOS, Ctrl+V elsewhere)."""
    from pynput.keyboard import Controller, Key

    keyboard = Controller()
    modifier = Key.cmd if sys.platform == "darwin" else Key.ctrl
    try:
        with keyboard.pressed(modifier):
            keyboard.press("v")
            keyboard.release("v")
    except Exception as e:
        raise DeliveryFailed(f"Paste keystroke failed: {e}") from e


class ClipboardDelivery:
    """Delivers final text: clipboard always, paste keystroke when enabled."""

    def copy_and_deliver(self, text: str, auto_paste: bool) -> None:
        if not text:
            return

        copy_to_clipboard(text)
        if auto_paste:
            time.sleep(PASTE_DELAY_SECONDS)
            send_paste_keystroke()
        logger.info("[output] Delivered %d chars (paste=%s)", len(text), auto_paste)
