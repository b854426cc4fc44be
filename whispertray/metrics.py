"""
Thread-safe session event log with batched writes.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    metrics.log("transcription", session_id=sid, latency_ms=234)
"""

import json
import logging
import threading
import time
from pathlib import Path
from queue import Queue, Empty
from typing import Any

logger = logging.getLogger(__name__)


class MetricsWriter:
    """
    Appends one JSON object per line to metrics_file.
    Uses a queue so log() never blocks the caller on disk I/O.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = Path(metrics_file)
        self._queue: "Queue[dict]" = Queue()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._writer_thread.start()

    def log(self, event: str, **kwargs: Any) -> None:
        """Queue an event for writing. Non-blocking."""
        self._queue.put({"ts": time.time(), "event": event, **kwargs})

    def _writer_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                entries = [self._queue.get(timeout=1.0)]
            except Empty:
                continue
            entries.extend(self._drain())
            self._write_entries(entries)

    def _drain(self) -> list:
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                return entries

    def _write_entries(self, entries: list) -> None:
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.metrics_file, "a") as f:
                for entry in entries:
                    f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning("[metrics] Failed to write metrics: %s", e)

    def flush(self) -> None:
        """Write any queued events now."""
        entries = self._drain()
        if entries:
            self._write_entries(entries)

    def shutdown(self) -> None:
        self._shutdown.set()
        self._writer_thread.join(timeout=2.0)
        self.flush()


# Typed helpers, one per session event

def log_session_start(metrics: MetricsWriter, session_id: str, mode: str, context_captured: bool) -> None:
    metrics.log("session_start", session_id=session_id, mode=mode, context_captured=context_captured)


def log_transcription(
    metrics: MetricsWriter,
    session_id: str,
    provider: str,
    model: str,
    latency_ms: int,
    text: str,
) -> None:
    metrics.log(
        "transcription",
        session_id=session_id,
        provider=provider,
        model=model,
        latency_ms=latency_ms,
        text=text[:200],  # Truncated
    )


def log_llm_completion(
    metrics: MetricsWriter,
    session_id: str,
    provider: str,
    model: str,
    latency_ms: int,
    fell_back: bool,
) -> None:
    metrics.log(
        "llm_completion",
        session_id=session_id,
        provider=provider,
        model=model,
        latency_ms=latency_ms,
        fell_back=fell_back,
    )


def log_session_complete(
    metrics: MetricsWriter,
    session_id: str,
    audio_ms: int,
    total_ms: int,
    chars: int,
) -> None:
    metrics.log("session_complete", session_id=session_id, audio_ms=audio_ms, total_ms=total_ms, chars=chars)


def log_session_error(metrics: MetricsWriter, session_id: str, error: str) -> None:
    metrics.log("session_error", session_id=session_id, error=error)
