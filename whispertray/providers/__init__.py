"""
Speech-to-text and completion providers.

Each provider is built fresh for a session by whispertray.dispatch and
exposes a single capability: transcribe() or complete().
"""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

# Upper bound for any network call made by a provider
REQUEST_TIMEOUT = 120


class SttProvider(ABC):
    """
    Base class for speech-to-text providers.

    Subclasses must implement transcribe() and raise TranscriptionFailed
    on any failure.
    """

    name: str = "stt"

    @abstractmethod
    def transcribe(self, samples: np.ndarray, language: Optional[str] = None) -> str:
        """
        Transcribe audio to text.

        Args:
            samples: Audio data (16kHz, mono, float32 in [-1, 1])
            language: Language code, or None for the provider default

        Returns:
            Recognised text with non-speech markers removed
        """


class LlmProvider(ABC):
    """
    Base class for completion providers.

    Subclasses must implement complete() and raise CompletionFailed on any
    failure, including an empty response.
    """

    name: str = "llm"

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Return the model's completion for prompt."""
