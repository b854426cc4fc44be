"""
Result pipeline: persist a finished session and deliver its text.

Both steps are side effects on an already-final result, so their failures
are logged and never change the session outcome.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from .audio import save_wav
from .types import HistoryRecord

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)


class ResultPipeline:
    """
    Hands a finished session to persistence, then to delivery.

    Usage:
        pipeline = ResultPipeline(history, ClipboardDelivery(), config.audio_dir)
        record = pipeline.finish(session)
    """

    def __init__(self, history, delivery, audio_dir: Optional[Path] = None, save_audio: bool = True):
        self.history = history
        self.delivery = delivery
        self.audio_dir = Path(audio_dir) if audio_dir else None
        self.save_audio = save_audio

    def build_record(self, session: "Session", audio_path: Optional[str] = None) -> HistoryRecord:
        mode = session.mode
        post_processed = mode.post_processing_enabled
        return HistoryRecord(
            id=session.id,
            created_at=datetime.now(timezone.utc),
            mode_key=mode.key,
            audio_path=audio_path,
            transcript_raw=session.transcript,
            output_final=session.output,
            stt_provider=mode.stt_provider.lower(),
            stt_model=mode.stt_model,
            llm_provider=mode.llm_provider.lower() if post_processed else None,
            llm_model=mode.llm_model if post_processed else None,
            duration_ms=session.duration_ms,
            error=session.error,
            metadata={"context_captured": session.context is not None},
        )

    def finish(self, session: "Session") -> HistoryRecord:
        record = self.build_record(session, self._save_audio(session))

        try:
            self.history.insert(record)
        except Exception as e:
            logger.error("[pipeline] Failed to save history for %s: %s", session.id, e)

        try:
            self.delivery.copy_and_deliver(session.output, session.settings.auto_paste)
        except Exception as e:
            logger.error("[pipeline] Delivery failed for %s: %s", session.id, e)

        return record

    def _save_audio(self, session: "Session") -> Optional[str]:
        if not self.save_audio or self.audio_dir is None or session.samples is None:
            return None

        path = self.audio_dir / f"{session.id}.wav"
        try:
            save_wav(session.samples, path, session.settings.sample_rate)
        except Exception as e:
            logger.warning("[pipeline] Could not save audio %s: %s", path, e)
            return None
        return str(path)
