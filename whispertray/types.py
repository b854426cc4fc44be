"""
Shared type definitions for WhisperTray.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable


LevelCallback = Callable[[float], None]


class SessionStatus(str, Enum):
    """Recording status shown by the tray icon."""
    LOADING = "loading"
    RECORDING = "recording"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class SttProviderKind(str, Enum):
    WHISPERCPP = "whispercpp"          # Local whisper model
    WHISPERSERVER = "whisperserver"    # Self-hosted OpenAI-compatible server
    OPENAI = "openai"                  # OpenAI cloud
    DEEPGRAM = "deepgram"              # Recognised, not supported yet
    CUSTOM = "custom"


class LlmProviderKind(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class OutputFormat(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class Mode:
    """
    A dictation mode: how to transcribe and whether/how to rewrite.

    Modes are read-only for the duration of a session.
    """
    key: str
    name: str
    description: str = ""
    stt_provider: str = SttProviderKind.WHISPERCPP.value
    stt_model: str = "base.en"
    ai_processing: bool = False
    llm_provider: str = LlmProviderKind.OLLAMA.value
    llm_model: str = ""
    prompt_template: str = ""     # Supports {{transcript}}, {{language}}, {{#if context}}..{{/if}}
    output_format: OutputFormat = OutputFormat.PLAIN
    builtin: bool = False

    @property
    def post_processing_enabled(self) -> bool:
        return self.ai_processing and bool(self.prompt_template.strip())

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["output_format"] = self.output_format.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mode":
        known = {f for f in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        if "output_format" in values:
            values["output_format"] = OutputFormat(str(values["output_format"]).lower())
        if "key" not in values or "name" not in values:
            raise ValueError("mode requires 'key' and 'name'")
        return cls(**values)


@dataclass(frozen=True)
class Settings:
    """
    Immutable snapshot of configuration for a session.
    Ensures config changes mid-session don't cause inconsistency.
    """
    active_mode_key: str
    input_device: str
    auto_paste: bool
    context_awareness: bool
    language: str
    sample_rate: int
    whisper_server_url: Optional[str]
    ollama_url: str
    models_dir: str
    audio_dir: str


@dataclass
class AudioDevice:
    name: str
    is_default: bool = False


@dataclass
class HistoryRecord:
    """One persisted dictation (raw transcript, final output and provenance)."""
    id: str
    created_at: datetime
    mode_key: str
    audio_path: Optional[str]
    transcript_raw: str
    output_final: str
    stt_provider: str
    stt_model: str
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
