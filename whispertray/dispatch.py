"""
Provider dispatch: map a mode's provider selectors to live providers.

Provider kinds form a closed set (see types.SttProviderKind and
types.LlmProviderKind); anything unrecognised is a custom provider and is
rejected before any network or device access.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import numpy as np

from .audio import resample
from .credentials import CredentialStore
from .errors import MissingCredential, UnsupportedProvider
from .prompt import render_prompt
from .providers import SttProvider, LlmProvider
from .providers.stt import (
    DEFAULT_SERVER_URL, OpenAiCompatibleSttProvider, WhisperLocalProvider, ensure_model,
)
from .providers.llm import AnthropicProvider, OllamaProvider, OpenAIProvider
from .types import LlmProviderKind, Mode, SttProviderKind

logger = logging.getLogger(__name__)

# Every STT provider is fed 16 kHz mono
STT_SAMPLE_RATE = 16000


def parse_stt_kind(name: str) -> SttProviderKind:
    try:
        return SttProviderKind(name.strip().lower())
    except ValueError:
        return SttProviderKind.CUSTOM


def parse_llm_kind(name: str) -> LlmProviderKind:
    try:
        return LlmProviderKind(name.strip().lower())
    except ValueError:
        return LlmProviderKind.CUSTOM


def create_stt_provider(
    provider: str,
    model: str,
    credentials: CredentialStore,
    models_dir: Path,
    server_url: Optional[str] = None,
) -> SttProvider:
    """
    Build the STT provider a mode asks for.

    Raises:
        UnsupportedProvider: deepgram or an unknown/custom name
        MissingCredential: OpenAI cloud without an API key
        ModelUnavailable: local model missing and the download failed
    """
    kind = parse_stt_kind(provider)

    if kind == SttProviderKind.WHISPERCPP:
        return WhisperLocalProvider(ensure_model(model, models_dir))

    if kind == SttProviderKind.WHISPERSERVER:
        base_url = server_url or os.getenv("WHISPER_API_URL") or DEFAULT_SERVER_URL
        return OpenAiCompatibleSttProvider.self_hosted(base_url, model)

    if kind == SttProviderKind.OPENAI:
        api_key = credentials.get("openai")
        if not api_key:
            raise MissingCredential("OpenAI STT")
        return OpenAiCompatibleSttProvider.openai_cloud(api_key, model)

    # Deepgram is recognised but not implemented yet
    raise UnsupportedProvider(provider)


def create_llm_provider(
    provider: str,
    model: str,
    credentials: CredentialStore,
    ollama_url: str = "http://localhost:11434",
) -> LlmProvider:
    """
    Build the completion provider a mode asks for.

    Raises:
        UnsupportedProvider: unknown/custom name
        MissingCredential: cloud provider without an API key
    """
    kind = parse_llm_kind(provider)

    if kind == LlmProviderKind.OLLAMA:
        return OllamaProvider(model, ollama_url)

    if kind == LlmProviderKind.OPENAI:
        api_key = credentials.get("openai")
        if not api_key:
            raise MissingCredential("OpenAI")
        return OpenAIProvider(api_key, model)

    if kind == LlmProviderKind.ANTHROPIC:
        api_key = credentials.get("anthropic")
        if not api_key:
            raise MissingCredential("Anthropic")
        return AnthropicProvider(api_key, model)

    raise UnsupportedProvider(provider)


def transcribe(
    samples: np.ndarray,
    mode: Mode,
    language: str,
    credentials: CredentialStore,
    models_dir: Path,
    server_url: Optional[str] = None,
    sample_rate: int = STT_SAMPLE_RATE,
) -> str:
    """
    Transcribe with the mode's STT provider. All failures propagate.

    Audio captured at any other rate is resampled to STT_SAMPLE_RATE first.
    """
    provider = create_stt_provider(
        mode.stt_provider, mode.stt_model, credentials, models_dir, server_url
    )
    if sample_rate != STT_SAMPLE_RATE:
        samples = resample(samples, sample_rate, STT_SAMPLE_RATE)
    return provider.transcribe(samples, language)


def complete(
    mode: Mode,
    transcript: str,
    context: Optional[str],
    language: str,
    credentials: CredentialStore,
    ollama_url: str = "http://localhost:11434",
) -> str:
    """Render the mode's prompt and complete it. All failures propagate."""
    provider = create_llm_provider(mode.llm_provider, mode.llm_model, credentials, ollama_url)
    prompt = render_prompt(mode.prompt_template, transcript, context, language)
    return provider.complete(prompt)


def post_process(
    mode: Mode,
    transcript: str,
    context: Optional[str],
    language: str,
    credentials: CredentialStore,
    ollama_url: str = "http://localhost:11434",
) -> str:
    """
    Rewrite a transcript with the mode's LLM, falling back to the transcript.

    A failed rewrite never loses the recording: any error, including a
    malformed provider reply, is logged and the filtered transcript is
    returned unchanged.
    """
    if not mode.post_processing_enabled:
        return transcript

    logger.info("[dispatch] Post-processing with %s/%s", mode.llm_provider, mode.llm_model)
    try:
        return complete(mode, transcript, context, language, credentials, ollama_url)
    except Exception as e:
        logger.warning("[dispatch] AI processing failed: %s, using raw transcript", e)
        return transcript


class ProviderDispatch:
    """
    Provider dispatch bound to the app's credentials and endpoints.

    Providers are built fresh on every call; only local model weights are
    memoised (see providers.stt).
    """

    def __init__(
        self,
        credentials: CredentialStore,
        models_dir: Path,
        server_url: Optional[str] = None,
        ollama_url: str = "http://localhost:11434",
    ):
        self.credentials = credentials
        self.models_dir = Path(models_dir)
        self.server_url = server_url
        self.ollama_url = ollama_url

    @classmethod
    def from_settings(cls, settings, credentials: CredentialStore) -> "ProviderDispatch":
        return cls(credentials, Path(settings.models_dir), settings.whisper_server_url, settings.ollama_url)

    def transcribe(
        self, samples: np.ndarray, mode: Mode, language: str, sample_rate: int = STT_SAMPLE_RATE
    ) -> str:
        return transcribe(
            samples, mode, language, self.credentials, self.models_dir, self.server_url, sample_rate
        )

    def complete(self, mode: Mode, transcript: str, context: Optional[str], language: str) -> str:
        return complete(mode, transcript, context, language, self.credentials, self.ollama_url)

    def post_process(self, mode: Mode, transcript: str, context: Optional[str], language: str) -> str:
        return post_process(mode, transcript, context, language, self.credentials, self.ollama_url)
