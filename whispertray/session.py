"""
Recording session lifecycle.

SessionController is the single owner of the current status and of the
active Session. Trigger sources (tray, hotkey, menu) call start()/stop()
from any thread; each call checks and changes status under one lock, so
racing callers see the updated status and get a precondition error rather
than a double start or double stop.

Slow work (STT, LLM, persistence) runs with status == PROCESSING and the
lock released, which keeps status() answerable during processing while
still rejecting any new start()/stop() until the pipeline concludes.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, TYPE_CHECKING
from uuid import uuid4

import numpy as np

from .audio import AudioCapture, duration_ms, load_wav
from .errors import (
    ModeNotFound, NoRecordingInProgress, PersistenceFailed, RecordingInProgress,
    TranscriptionFailed, WhisperTrayError,
)
from .metrics import (
    MetricsWriter, log_llm_completion, log_session_complete, log_session_error, log_session_start,
    log_transcription,
)
from .output import get_clipboard
from .types import HistoryRecord, LevelCallback, Mode, SessionStatus, Settings

if TYPE_CHECKING:
    from .config import Config
    from .dispatch import ProviderDispatch
    from .modes import ModeRegistry
    from .pipeline import ResultPipeline

logger = logging.getLogger(__name__)


ACTIVE_STATUSES = (SessionStatus.RECORDING, SessionStatus.PROCESSING)


@dataclass
class Session:
    """
    One recording, from start of capture to delivered output.

    Owned by SessionController and discarded once status returns to
    READY or ERROR.
    """
    id: str
    mode: Mode
    settings: Settings
    context: Optional[str] = None
    started_at: float = field(default_factory=time.time)

    # Filled in by stop()
    samples: Optional[np.ndarray] = None
    transcript: str = ""
    output: str = ""
    error: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        if self.samples is None:
            return 0
        return duration_ms(len(self.samples), self.settings.sample_rate)


class SessionController:
    """
    State machine for dictation sessions.

    LOADING -> READY -> RECORDING -> PROCESSING -> READY | ERROR
    ERROR accepts start() like READY does.

    Usage:
        controller = SessionController(config, modes, capture, dispatch, pipeline)
        controller.mark_ready()
        controller.start()
        text = controller.stop()
    """

    def __init__(
        self,
        config: "Config",
        modes: "ModeRegistry",
        capture: AudioCapture,
        dispatch: "ProviderDispatch",
        pipeline: "ResultPipeline",
        metrics: Optional[MetricsWriter] = None,
        context_provider: Callable[[], Optional[str]] = get_clipboard,
    ):
        self.config = config
        self.modes = modes
        self.capture = capture
        self.dispatch = dispatch
        self.pipeline = pipeline
        self.metrics = metrics
        self.context_provider = context_provider

        self._lock = threading.Lock()
        self._status = SessionStatus.LOADING
        self._session: Optional[Session] = None

        # Level listeners are notified on the audio thread, outside _lock
        self._level_listeners: List[LevelCallback] = []
        self._listeners_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> SessionStatus:
        """Current status. Never waits on processing."""
        with self._lock:
            return self._status

    def mark_ready(self) -> None:
        """Leave LOADING once modes and providers are available."""
        with self._lock:
            if self._status == SessionStatus.LOADING:
                self._status = SessionStatus.READY
        logger.info("[session] Ready")

    def active_mode(self) -> Mode:
        key = self.config.active_mode_key
        mode = self.modes.get(key)
        if mode is None:
            raise ModeNotFound(key)
        return mode

    def set_active_mode(self, key: str) -> None:
        """Select the mode used by the next session and persist the choice."""
        if self.modes.get(key) is None:
            raise ModeNotFound(key)
        self.config.active_mode_key = key
        self.config.save_settings()
        logger.info("[session] Active mode: %s", key)

    # ------------------------------------------------------------------
    # Level feedback
    # ------------------------------------------------------------------

    def add_level_listener(self, listener: LevelCallback) -> None:
        with self._listeners_lock:
            self._level_listeners.append(listener)

    def remove_level_listener(self, listener: LevelCallback) -> None:
        with self._listeners_lock:
            if listener in self._level_listeners:
                self._level_listeners.remove(listener)

    def _emit_level(self, level: float) -> None:
        # Runs on the audio thread; values may arrive stale or out of order
        with self._listeners_lock:
            listeners = list(self._level_listeners)
        for listener in listeners:
            try:
                listener(level)
            except Exception as e:
                logger.debug("[session] Level listener failed: %s", e)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start(self, level_callback: Optional[LevelCallback] = None) -> None:
        """
        Begin a recording session.

        Args:
            level_callback: Extra one-session level listener

        Raises:
            RecordingInProgress: a session is recording or processing
            ModeNotFound: the active mode does not exist
            DeviceError: the input device could not be opened
        """
        with self._lock:
            if self._status in ACTIVE_STATUSES:
                raise RecordingInProgress()

            mode = self.active_mode()
            settings = self.config.snapshot()
            context = self._capture_context() if settings.context_awareness else None

            session = Session(id=str(uuid4()), mode=mode, settings=settings, context=context)

            def on_level(level: float) -> None:
                self._emit_level(level)
                if level_callback is not None:
                    level_callback(level)

            try:
                self.capture.start_capture(settings.input_device, on_level)
            except WhisperTrayError:
                self._status = SessionStatus.ERROR
                raise

            self._session = session
            self._status = SessionStatus.RECORDING

        logger.info("[session] Recording started (%s, mode=%s)", session.id, mode.key)
        if self.metrics:
            log_session_start(self.metrics, session.id, mode.key, context is not None)

    def stop(self) -> str:
        """
        Stop recording and run the pipeline to completion.

        Returns:
            The final (possibly post-processed) text

        Raises:
            NoRecordingInProgress: status is not RECORDING (status unchanged)
            DeviceError, NotCapturing: capture could not be stopped cleanly
            ModelUnavailable, MissingCredential, UnsupportedProvider,
            TranscriptionFailed: speech-to-text failed
        """
        with self._lock:
            if self._status != SessionStatus.RECORDING:
                raise NoRecordingInProgress()

            session = self._session
            try:
                session.samples = self.capture.stop_capture()
            except Exception:
                self._session = None
                self._status = SessionStatus.ERROR
                raise

            self._status = SessionStatus.PROCESSING

        logger.info("[session] Processing %s (%.2fs of audio)", session.id, session.duration_ms / 1000)

        succeeded = False
        try:
            output = self._process(session)
            succeeded = True
        except Exception as e:
            session.error = str(e)
            logger.error("[session] Session %s failed: %s", session.id, e)
            if self.metrics:
                log_session_error(self.metrics, session.id, str(e))
            raise
        finally:
            # Covers KeyboardInterrupt too; status never stays PROCESSING
            self._finish(SessionStatus.READY if succeeded else SessionStatus.ERROR)

        if self.metrics:
            log_session_complete(
                self.metrics,
                session.id,
                audio_ms=session.duration_ms,
                total_ms=int((time.time() - session.started_at) * 1000),
                chars=len(output),
            )
        return output

    def cancel(self) -> None:
        """Discard an in-progress recording without processing it."""
        with self._lock:
            if self._status != SessionStatus.RECORDING:
                return
            session, self._session = self._session, None
            try:
                self.capture.abort()
            finally:
                self._status = SessionStatus.READY
        logger.info("[session] Recording cancelled (%s)", session.id if session else "-")

    def toggle(self, level_callback: Optional[LevelCallback] = None) -> Optional[str]:
        """
        Stop if recording, otherwise start. Used by hotkey and tray clicks.

        Returns:
            The final text when this call stopped a session, else None
        """
        if self.status() == SessionStatus.RECORDING:
            return self.stop()
        self.start(level_callback)
        return None

    def _finish(self, status: SessionStatus) -> None:
        with self._lock:
            self._session = None
            self._status = status

    def _process(self, session: Session) -> str:
        """STT -> filter -> optional LLM -> persist/deliver."""
        settings = session.settings

        start = time.time()
        transcript = self.dispatch.transcribe(
            session.samples, session.mode, settings.language, settings.sample_rate
        )
        if not transcript:
            raise TranscriptionFailed("No speech recognized")
        session.transcript = transcript
        logger.info("[session] Transcription complete: %d chars in %.2fs",
                    len(transcript), time.time() - start)
        if self.metrics:
            log_transcription(
                self.metrics,
                session.id,
                session.mode.stt_provider,
                session.mode.stt_model,
                int((time.time() - start) * 1000),
                transcript,
            )

        output = transcript
        if session.mode.post_processing_enabled:
            start = time.time()
            output = self.dispatch.post_process(
                session.mode, transcript, session.context, settings.language
            ) or transcript
            if self.metrics:
                log_llm_completion(
                    self.metrics,
                    session.id,
                    session.mode.llm_provider,
                    session.mode.llm_model,
                    int((time.time() - start) * 1000),
                    fell_back=output == transcript,
                )
        session.output = output

        self.pipeline.finish(session)
        return output

    def _capture_context(self) -> Optional[str]:
        try:
            return self.context_provider()
        except Exception as e:
            logger.warning("[session] Could not capture context: %s", e)
            return None

    # ------------------------------------------------------------------
    # Offline processing
    # ------------------------------------------------------------------

    def _begin_offline(self) -> SessionStatus:
        with self._lock:
            if self._status in ACTIVE_STATUSES:
                raise RecordingInProgress()
            previous, self._status = self._status, SessionStatus.PROCESSING
            return previous

    def _end_offline(self, previous: SessionStatus, succeeded: bool) -> None:
        # Offline work never completes startup; only mark_ready() leaves LOADING
        if previous == SessionStatus.LOADING:
            self._finish(SessionStatus.LOADING)
        else:
            self._finish(SessionStatus.READY if succeeded else SessionStatus.ERROR)

    def transcribe_file(self, path: Path) -> str:
        """
        Transcribe an audio file with the active mode's STT provider.

        Nothing is persisted or delivered.
        """
        previous = self._begin_offline()
        succeeded = False
        try:
            mode = self.active_mode()
            settings = self.config.snapshot()
            samples = load_wav(Path(path), settings.sample_rate)
            transcript = self.dispatch.transcribe(samples, mode, settings.language, settings.sample_rate)
            succeeded = True
        finally:
            self._end_offline(previous, succeeded)
        return transcript

    def reprocess(self, record_id: str, mode_key: str) -> str:
        """
        Re-run post-processing of a stored transcript with another mode.

        Unlike a live session, a completion failure here is raised: the
        original record is left untouched.

        Raises:
            PersistenceFailed: record not found or not updatable
            ModeNotFound: unknown mode_key
            CompletionFailed, MissingCredential, UnsupportedProvider
        """
        previous = self._begin_offline()
        succeeded = False
        try:
            history = self.pipeline.history
            record: Optional[HistoryRecord] = history.get(record_id)
            if record is None:
                raise PersistenceFailed(f"History item not found: {record_id}")

            mode = self.modes.get(mode_key)
            if mode is None:
                raise ModeNotFound(mode_key)

            language = self.config.snapshot().language
            if mode.post_processing_enabled:
                output = self.dispatch.complete(mode, record.transcript_raw, None, language)
                record.llm_provider = mode.llm_provider.lower()
                record.llm_model = mode.llm_model
            else:
                output = record.transcript_raw
                record.llm_provider = None
                record.llm_model = None

            record.mode_key = mode.key
            record.output_final = output
            history.update(record)
            succeeded = True
        finally:
            self._end_offline(previous, succeeded)
        return output
