"""
Global hotkey that toggles recording.

The pynput listener thread must never block, so each press hands the
toggle to a worker thread. Overlapping presses are resolved by the
controller itself: a press during processing is rejected, not queued.
"""

import logging
import threading
from typing import Optional, TYPE_CHECKING

from .errors import NoRecordingInProgress, RecordingInProgress, WhisperTrayError

if TYPE_CHECKING:
    from .session import SessionController

logger = logging.getLogger(__name__)


DEFAULT_HOTKEY = "<ctrl>+<space>"


class HotkeyListener:
    """
    Usage:
        hotkeys = HotkeyListener(controller, config.hotkey)
        hotkeys.start()
        ...
        hotkeys.stop()
    """

    def __init__(self, controller: "SessionController", hotkey: str = DEFAULT_HOTKEY):
        self.controller = controller
        self.hotkey = hotkey or DEFAULT_HOTKEY
        self._listener = None

    def start(self) -> None:
        from pynput import keyboard

        self._listener = keyboard.GlobalHotKeys({self.hotkey: self.on_activate})
        self._listener.start()
        logger.info("[hotkey] Listening for %s", self.hotkey)

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    def on_activate(self) -> threading.Thread:
        worker = threading.Thread(target=self._toggle, daemon=True)
        worker.start()
        return worker

    def _toggle(self) -> Optional[str]:
        try:
            text = self.controller.toggle()
        except (RecordingInProgress, NoRecordingInProgress) as e:
            logger.info("[hotkey] Ignored: %s", e)
            return None
        except WhisperTrayError as e:
            logger.error("[hotkey] %s", e)
            return None

        if text is not None:
            logger.info("[hotkey] Delivered: %s", text[:80])
        return text
