"""
Completion providers for post-processing: Ollama, OpenAI and Anthropic.
"""

import logging
import time

import requests

from . import LlmProvider, REQUEST_TIMEOUT
from ..errors import CompletionFailed

logger = logging.getLogger(__name__)


OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"
DEFAULT_OLLAMA_MODEL = "llama3.2"

MAX_TOKENS = 2000
TEMPERATURE = 0.3


class _HttpLlmProvider(LlmProvider):
    """Shared request/response handling for the HTTP providers."""

    def __init__(self, model: str):
        self.model = model

    def _post(self, url: str, payload: dict, headers: dict = None) -> dict:
        start = time.time()
        try:
            response = requests.post(url, json=payload, headers=headers or {}, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise CompletionFailed(f"[{self.name}] Request failed: {e}") from e

        if response.status_code != 200:
            raise CompletionFailed(
                f"[{self.name}] API error ({response.status_code}): {response.text[:200]}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise CompletionFailed(f"[{self.name}] Invalid JSON response: {e}") from e

        if not isinstance(result, dict):
            raise CompletionFailed(f"[{self.name}] Unexpected response: {type(result).__name__}")

        logger.info("[%s] %s -> %.2fs", self.name, self.model, time.time() - start)
        return result

    def _require_text(self, text) -> str:
        if not isinstance(text, str) or not text.strip():
            raise CompletionFailed(f"[{self.name}] Empty response")
        return text.strip()


class OllamaProvider(_HttpLlmProvider):
    """Local Ollama daemon, no API key."""

    name = "ollama"

    def __init__(self, model: str, base_url: str = "http://localhost:11434"):
        super().__init__(model or DEFAULT_OLLAMA_MODEL)
        self.base_url = base_url.rstrip("/")

    def complete(self, prompt: str) -> str:
        result = self._post(
            f"{self.base_url}/api/generate",
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": TEMPERATURE},
            },
        )
        return self._require_text(result.get("response"))


class OpenAIProvider(_HttpLlmProvider):

    name = "openai"

    def __init__(self, api_key: str, model: str):
        super().__init__(model or DEFAULT_OPENAI_MODEL)
        self.api_key = api_key

    def complete(self, prompt: str) -> str:
        result = self._post(
            OPENAI_CHAT_URL,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": TEMPERATURE,
                "max_tokens": MAX_TOKENS,
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            text = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionFailed(f"[{self.name}] Unexpected response shape: {e}") from e
        return self._require_text(text)


class AnthropicProvider(_HttpLlmProvider):

    name = "anthropic"

    def __init__(self, api_key: str, model: str):
        super().__init__(model or DEFAULT_ANTHROPIC_MODEL)
        self.api_key = api_key

    def complete(self, prompt: str) -> str:
        result = self._post(
            ANTHROPIC_MESSAGES_URL,
            {
                "model": self.model,
                "max_tokens": MAX_TOKENS,
                "temperature": TEMPERATURE,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )
        blocks = result.get("content") or []
        if not isinstance(blocks, list):
            raise CompletionFailed(f"[{self.name}] Unexpected content: {type(blocks).__name__}")
        text = "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")
        return self._require_text(text)
