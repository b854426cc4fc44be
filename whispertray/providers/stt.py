"""
Speech-to-text providers: local whisper model and OpenAI-compatible HTTP.
"""

import io
import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import requests
import soundfile as sf

from . import SttProvider, REQUEST_TIMEOUT
from ..errors import ModelUnavailable, TranscriptionFailed
from ..filters import join_segments

logger = logging.getLogger(__name__)


OPENAI_BASE_URL = "https://api.openai.com"
DEFAULT_SERVER_URL = "http://localhost:8000"

# Loaded models keyed by path; loading is the slow part of local inference
_model_cache: Dict[str, object] = {}
_model_cache_lock = threading.Lock()

# Weights file of a finished download; a directory without it is partial
MODEL_WEIGHTS = "model.bin"


def _audio_to_wav_bytes(samples: np.ndarray, sample_rate: int = 16000) -> bytes:
    """Convert numpy audio array to 16-bit PCM WAV bytes."""
    audio_int16 = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    sf.write(buffer, audio_int16, sample_rate, format="WAV", subtype="PCM_16")
    buffer.seek(0)
    return buffer.getvalue()


def get_model_path(model_name: str, models_dir: Path) -> Path:
    """Directory a local model is cached in."""
    return Path(models_dir) / f"whisper-{model_name}"


def ensure_model(model_name: str, models_dir: Path) -> Path:
    """
    Return the local model directory, downloading it on first use.

    Raises:
        ModelUnavailable: if the download fails
    """
    model_path = get_model_path(model_name, models_dir)
    if (model_path / MODEL_WEIGHTS).exists():
        logger.debug("[stt] Model already present: %s", model_path)
        return model_path

    logger.info("[stt] Downloading model %s to %s", model_name, model_path)
    try:
        from faster_whisper import download_model

        model_path.mkdir(parents=True, exist_ok=True)
        download_model(model_name, output_dir=str(model_path))
    except Exception as e:
        shutil.rmtree(model_path, ignore_errors=True)
        raise ModelUnavailable(model_name, str(e)) from e

    logger.info("[stt] Model downloaded: %s", model_path)
    return model_path


def _load_model(model_path: Path):
    """Load (or reuse) a WhisperModel for model_path."""
    key = str(model_path)
    with _model_cache_lock:
        model = _model_cache.get(key)
        if model is None:
            from faster_whisper import WhisperModel

            start = time.time()
            model = WhisperModel(key, device="auto", compute_type="int8")
            _model_cache[key] = model
            logger.info("[stt] Loaded model %s in %.2fs", model_path.name, time.time() - start)
        return model


class WhisperLocalProvider(SttProvider):
    """
    Local transcription with a whisper model via faster-whisper.

    The model must already be on disk; see ensure_model().
    """

    name = "whisper.cpp"

    def __init__(self, model_path: Path):
        self.model_path = Path(model_path)

    def transcribe(self, samples: np.ndarray, language: Optional[str] = None) -> str:
        start = time.time()
        try:
            model = _load_model(self.model_path)
            segments, _info = model.transcribe(
                np.asarray(samples, dtype=np.float32),
                language=language or "en",
                beam_size=1,
                without_timestamps=True,
            )
            # segments is a generator; decoding happens while iterating
            text = join_segments(seg.text for seg in segments)
        except Exception as e:
            raise TranscriptionFailed(f"[{self.name}] {e}") from e

        logger.info("[%s] %d chars in %.2fs", self.name, len(text), time.time() - start)
        return text


class OpenAiCompatibleSttProvider(SttProvider):
    """
    Transcription over the /v1/audio/transcriptions endpoint.

    Works with self-hosted servers (Speaches, faster-whisper-server, LocalAI)
    and with the OpenAI cloud API.
    """

    def __init__(self, base_url: str, model: str, api_key: Optional[str] = None, name: str = "openai-compatible"):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.name = name

    @classmethod
    def self_hosted(cls, base_url: str, model: str) -> "OpenAiCompatibleSttProvider":
        return cls(base_url, model, None, "Self-hosted Whisper")

    @classmethod
    def openai_cloud(cls, api_key: str, model: str) -> "OpenAiCompatibleSttProvider":
        return cls(OPENAI_BASE_URL, model, api_key, "OpenAI Cloud")

    def transcribe(self, samples: np.ndarray, language: Optional[str] = None) -> str:
        url = f"{self.base_url}/v1/audio/transcriptions"
        files = {"file": ("audio.wav", _audio_to_wav_bytes(samples), "audio/wav")}
        data = {"model": self.model}
        if language:
            data["language"] = language

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info("[%s] Sending transcription request to %s", self.name, url)
        start = time.time()

        try:
            response = requests.post(url, files=files, data=data, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise TranscriptionFailed(f"[{self.name}] Request failed: {e}") from e

        if response.status_code != 200:
            raise TranscriptionFailed(
                f"[{self.name}] API error ({response.status_code}): {response.text[:200]}"
            )

        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranscriptionFailed(f"[{self.name}] Failed to parse response: {e}") from e

        text = join_segments([text or ""])
        logger.info("[%s] %d chars in %.2fs", self.name, len(text), time.time() - start)
        return text
