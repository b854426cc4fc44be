"""
API key lookup for cloud providers.

Keys come from the process environment first, then from the .env values
the Config loaded. A missing key is not an error here; dispatch raises
MissingCredential only for providers that need one.
"""

import os
from typing import Dict, Optional

# Provider name -> environment variable
KEY_NAMES = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepgram": "DEEPGRAM_API_KEY",
}


class CredentialStore:

    def __init__(self, env_values: Optional[Dict[str, str]] = None):
        self._env_values = dict(env_values or {})

    @classmethod
    def from_config(cls, config) -> "CredentialStore":
        return cls(config.env_values)

    def get(self, provider: str) -> Optional[str]:
        env_key = KEY_NAMES.get(provider.lower())
        if env_key is None:
            return None
        value = os.getenv(env_key) or self._env_values.get(env_key, "")
        return value.strip() or None

    def has(self, provider: str) -> bool:
        return self.get(provider) is not None
