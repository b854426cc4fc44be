"""
Dictation history stored in SQLite.

The recording core only calls insert() and update(); the read side is used
by the UI and by reprocessing.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .errors import PersistenceFailed
from .types import HistoryRecord

logger = logging.getLogger(__name__)


EXPORT_FORMATS = ("txt", "md", "srt", "vtt")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS history (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    mode_key TEXT NOT NULL,
    audio_path TEXT,
    transcript_raw TEXT NOT NULL,
    output_final TEXT NOT NULL,
    stt_provider TEXT NOT NULL,
    stt_model TEXT NOT NULL,
    llm_provider TEXT,
    llm_model TEXT,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    error TEXT,
    metadata TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_history_created_at ON history(created_at DESC);
"""

_COLUMNS = (
    "id", "created_at", "mode_key", "audio_path", "transcript_raw", "output_final",
    "stt_provider", "stt_model", "llm_provider", "llm_model", "duration_ms", "error",
    "metadata",
)


def _to_row(record: HistoryRecord) -> tuple:
    return (
        record.id,
        record.created_at.isoformat(),
        record.mode_key,
        record.audio_path,
        record.transcript_raw,
        record.output_final,
        record.stt_provider,
        record.stt_model,
        record.llm_provider,
        record.llm_model,
        int(record.duration_ms),
        record.error,
        json.dumps(record.metadata),
    )


def _from_row(row: sqlite3.Row) -> HistoryRecord:
    return HistoryRecord(
        id=row["id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        mode_key=row["mode_key"],
        audio_path=row["audio_path"],
        transcript_raw=row["transcript_raw"],
        output_final=row["output_final"],
        stt_provider=row["stt_provider"],
        stt_model=row["stt_model"],
        llm_provider=row["llm_provider"],
        llm_model=row["llm_model"],
        duration_ms=row["duration_ms"],
        error=row["error"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


class HistoryStore:
    """
    Thread-safe history table.

    Every write error is raised as PersistenceFailed so callers can decide
    whether it is fatal.

    Usage:
        store = HistoryStore(config.database_file)
        store.insert(record)
        recent = store.list(limit=50)
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)

    def insert(self, record: HistoryRecord) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        sql = f"INSERT INTO history ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        self._write(sql, _to_row(record))

    def update(self, record: HistoryRecord) -> None:
        assignments = ", ".join(f"{c} = ?" for c in _COLUMNS[1:])
        row = _to_row(record)
        count = self._write(f"UPDATE history SET {assignments} WHERE id = ?", row[1:] + (row[0],))
        if count == 0:
            raise PersistenceFailed(f"History item not found: {record.id}")

    def delete(self, record_id: str) -> None:
        """Delete a record and its audio file, if any."""
        record = self.get(record_id)
        if record is not None and record.audio_path:
            try:
                Path(record.audio_path).unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("[history] Could not remove %s: %s", record.audio_path, e)
        self._write("DELETE FROM history WHERE id = ?", (record_id,))

    def get(self, record_id: str) -> Optional[HistoryRecord]:
        rows = self._read("SELECT * FROM history WHERE id = ?", (record_id,))
        return _from_row(rows[0]) if rows else None

    def list(self, limit: int = 50, offset: int = 0) -> List[HistoryRecord]:
        rows = self._read(
            "SELECT * FROM history ORDER BY created_at DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [_from_row(r) for r in rows]

    def search(self, query: str, limit: int = 50) -> List[HistoryRecord]:
        pattern = f"%{query}%"
        rows = self._read(
            "SELECT * FROM history WHERE transcript_raw LIKE ? OR output_final LIKE ? "
            "ORDER BY created_at DESC LIMIT ?",
            (pattern, pattern, limit),
        )
        return [_from_row(r) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _write(self, sql: str, params: tuple) -> int:
        try:
            with self._lock, self._conn:
                return self._conn.execute(sql, params).rowcount
        except sqlite3.Error as e:
            raise PersistenceFailed(str(e)) from e

    def _read(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailed(str(e)) from e


def export_record(record: HistoryRecord, fmt: str) -> str:
    """
    Render a history record for export.

    Args:
        record: The record to export
        fmt: One of "txt", "md", "srt", "vtt"
    """
    fmt = fmt.lower()
    seconds, millis = divmod(int(record.duration_ms), 1000)

    if fmt == "txt":
        return record.output_final
    if fmt == "md":
        return (
            f"# Transcription\n\n"
            f"**Date:** {record.created_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"**Mode:** {record.mode_key}\n\n"
            f"## Output\n\n{record.output_final}"
        )
    if fmt == "srt":
        return f"1\n{_timestamp(0, 0, ',')} --> {_timestamp(seconds, millis, ',')}\n{record.output_final}\n"
    if fmt == "vtt":
        return f"WEBVTT\n\n{_timestamp(0, 0, '.')} --> {_timestamp(seconds, millis, '.')}\n{record.output_final}\n"

    raise ValueError(f"Unknown export format: {fmt}")


def _timestamp(seconds: int, millis: int, separator: str) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02}:{minutes:02}:{secs:02}{separator}{millis:03}"
