"""
Main entry point for WhisperTray.

Run with: python -m whispertray
"""

import logging
import signal
import sys
import threading

from . import __version__
from .audio import AudioCapture
from .config import Config
from .credentials import CredentialStore
from .dispatch import ProviderDispatch
from .history import HistoryStore
from .hotkey import HotkeyListener
from .metrics import MetricsWriter
from .modes import ModeRegistry, create_builtin_modes
from .output import ClipboardDelivery
from .pipeline import ResultPipeline
from .session import SessionController

logger = logging.getLogger("whispertray")

_stop_event = threading.Event()


def build_controller(config: Config, metrics: MetricsWriter) -> SessionController:
    """Wire the controller and its collaborators from a loaded Config."""
    modes = ModeRegistry(
        config.modes_dir,
        create_builtin_modes(
            config.default_stt_provider,
            config.default_stt_model,
            config.default_llm_provider,
            config.default_llm_model,
        ),
    )
    count = modes.load()
    logger.info("  Modes loaded: %d (active: %s)", count, config.active_mode_key)

    settings = config.snapshot()
    dispatch = ProviderDispatch.from_settings(settings, CredentialStore.from_config(config))
    pipeline = ResultPipeline(
        HistoryStore(config.database_file),
        ClipboardDelivery(),
        config.audio_dir,
    )
    capture = AudioCapture(sample_rate=config.sample_rate)

    return SessionController(config, modes, capture, dispatch, pipeline, metrics)


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    logger.info("WhisperTray v%s starting...", __version__)

    config = Config.load()
    logger.info("  Data dir: %s", config.data_dir)

    metrics = MetricsWriter(config.metrics_file)
    controller = build_controller(config, metrics)
    hotkeys = HotkeyListener(controller, config.hotkey)

    def shutdown(signum=None, frame=None):
        _stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    controller.mark_ready()
    hotkeys.start()
    logger.info("Ready! Press %s to record. Press Ctrl+C to quit.", config.hotkey)

    try:
        while not _stop_event.wait(0.5):
            pass
    finally:
        logger.info("Shutting down...")
        hotkeys.stop()
        controller.cancel()
        controller.pipeline.history.close()
        metrics.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
