"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots for session isolation.
"""

from pathlib import Path
from typing import Optional, Dict
import json
import logging
import os

from .types import Settings

logger = logging.getLogger(__name__)


# Defaults
DEFAULT_CONFIG = {
    "default_stt_provider": "whispercpp",
    "default_stt_model": "base.en",
    "default_llm_provider": "ollama",
    "default_llm_model": "llama3.2",
    "active_mode_key": "voice_to_text",
    "input_device": "",  # Empty means system default
    "auto_paste": True,
    "context_awareness": False,
    "language": "en",
    "whisper_server_url": "",
    "ollama_url": "http://localhost:11434",
    "sample_rate": 16000,
    "hotkey": "<ctrl>+<space>",
}

# Environment variable -> attribute
ENV_OVERRIDES = {
    "WHISPERTRAY_LANGUAGE": "language",
    "WHISPERTRAY_INPUT_DEVICE": "input_device",
    "WHISPER_API_URL": "whisper_server_url",
    "OLLAMA_URL": "ollama_url",
}


def _coerce(default, value):
    """Coerce a settings value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return type(default)(value)


def parse_env_file(env_file: Path) -> Dict[str, str]:
    """Parse KEY=VALUE lines from a .env file."""
    values: Dict[str, str] = {}
    try:
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                values[key.strip()] = value.strip().strip("'\"")
    except OSError as e:
        logger.warning("[config] Error loading %s: %s", env_file, e)
    return values


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for session
    """

    def __init__(self, data_dir: Optional[Path] = None):
        # Providers
        self.default_stt_provider: str = "whispercpp"
        self.default_stt_model: str = "base.en"
        self.default_llm_provider: str = "ollama"
        self.default_llm_model: str = "llama3.2"

        # Session
        self.active_mode_key: str = "voice_to_text"
        self.input_device: str = ""
        self.auto_paste: bool = True
        self.context_awareness: bool = False
        self.language: str = "en"
        self.sample_rate: int = 16000
        self.hotkey: str = "<ctrl>+<space>"

        # Endpoints
        self.whisper_server_url: str = ""
        self.ollama_url: str = "http://localhost:11434"

        # Paths
        if data_dir is None:
            data_dir = Path(os.getenv("WHISPERTRAY_HOME", str(Path.home() / ".whispertray")))
        self.data_dir: Path = Path(data_dir)
        self.settings_file: Path = self.data_dir / "settings.json"
        self.env_file: Path = self.data_dir / ".env"
        self.modes_dir: Path = self.data_dir / "modes"
        self.models_dir: Path = self.data_dir / "models"
        self.audio_dir: Path = self.data_dir / "audio"
        self.database_file: Path = self.data_dir / "history.db"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"

        # Raw .env values, consumed by CredentialStore
        self.env_values: Dict[str, str] = {}

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls(data_dir)
        config._ensure_data_dir()
        config._load_settings()
        config._load_env()
        return config

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Load .env files, then apply environment overrides."""
        # Project-root .env first, ~/.whispertray/.env overrides it
        for env_file in (Path(".env"), self.env_file):
            if env_file.exists():
                self.env_values.update(parse_env_file(env_file))

        for env_key, attr in ENV_OVERRIDES.items():
            value = os.getenv(env_key, self.env_values.get(env_key))
            if value is not None:
                setattr(self, attr, _coerce(DEFAULT_CONFIG[attr], value))

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("[config] Error loading %s: %s", settings_file, e)
            return

        # Apply settings with type validation
        for key, default in DEFAULT_CONFIG.items():
            if key not in data or data[key] is None:
                continue
            try:
                setattr(self, key, _coerce(default, data[key]))
            except (TypeError, ValueError):
                logger.warning("[config] Ignoring invalid value for %s: %r", key, data[key])

    def save_settings(self) -> None:
        """Save current settings to settings.json."""
        data = {key: getattr(self, key) for key in DEFAULT_CONFIG}

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def snapshot(self) -> Settings:
        """Return immutable copy for session isolation."""
        return Settings(
            active_mode_key=self.active_mode_key,
            input_device=self.input_device,
            auto_paste=self.auto_paste,
            context_awareness=self.context_awareness,
            language=self.language,
            sample_rate=self.sample_rate,
            whisper_server_url=self.whisper_server_url or None,
            ollama_url=self.ollama_url,
            models_dir=str(self.models_dir),
            audio_dir=str(self.audio_dir),
        )
