"""
Dictation modes.

Built-in modes are always available. Custom modes are JSON files in the
modes directory; a custom file with a built-in key overrides the built-in.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .types import Mode, OutputFormat

logger = logging.getLogger(__name__)


DEFAULT_MODE_KEY = "voice_to_text"

_CONTEXT_BLOCK = """{{#if context}}
Context (for reference only):
{{context}}
{{/if}}"""

MESSAGE_PROMPT = f"""You are a helpful assistant that cleans up voice transcriptions into short, casual messages suitable for chat or SMS.

Instructions:
- Fix any transcription errors or unclear words
- Remove filler words (um, uh, like, you know)
- Keep the casual, conversational tone
- Keep it concise
- Do not add any preamble or explanation, just output the cleaned message

{_CONTEXT_BLOCK}

Transcript to clean up:
{{{{transcript}}}}

Cleaned message:"""

EMAIL_PROMPT = f"""You are a helpful assistant that converts voice transcriptions into professional emails.

Instructions:
- Create a clear, professional email from the spoken content
- Include a concise subject line
- Structure the body with proper greeting, content, and sign-off
- Fix any transcription errors
- Maintain a professional but friendly tone
- Format as:
  Subject: [subject]

  [body]

{_CONTEXT_BLOCK}

Transcript:
{{{{transcript}}}}

Email:"""

NOTE_PROMPT = f"""You are a helpful assistant that converts voice transcriptions into organized notes.

Instructions:
- Extract key points from the transcription
- Organize into clear bullet points
- Group related items together
- Fix any transcription errors
- Be concise but capture all important information

{_CONTEXT_BLOCK}

Transcript:
{{{{transcript}}}}

Notes:"""

MEETING_PROMPT = f"""You are a helpful assistant that creates meeting summaries from transcriptions.

Instructions:
- Create a structured meeting summary
- Include:
  - Brief overview (2-3 sentences)
  - Key discussion points
  - Decisions made
  - Action items (with owners if mentioned)
- Fix any transcription errors
- Be concise but comprehensive

{_CONTEXT_BLOCK}

Transcript:
{{{{transcript}}}}

Meeting Summary:"""

SUPER_PROMPT = f"""You are a helpful assistant that intelligently processes voice transcriptions.

Instructions:
- Analyze the content and determine the best output format
- If it's a question, provide a helpful answer
- If it's a task or reminder, format it clearly
- If it's a message, clean it up appropriately
- If it's notes or ideas, organize them logically
- If it's code-related, format appropriately with any relevant syntax
- Fix any transcription errors
- Respond in the language with code {{{{language}}}}
- Output only the processed result, no explanation

{_CONTEXT_BLOCK}

Transcript:
{{{{transcript}}}}

Output:"""


def create_builtin_modes(
    stt_provider: str = "whispercpp",
    stt_model: str = "base.en",
    llm_provider: str = "ollama",
    llm_model: str = "llama3.2",
) -> List[Mode]:
    """Built-in modes, using the configured default providers."""
    def ai_mode(key, name, description, template, output_format=OutputFormat.PLAIN):
        return Mode(
            key=key,
            name=name,
            description=description,
            stt_provider=stt_provider,
            stt_model=stt_model,
            ai_processing=True,
            llm_provider=llm_provider,
            llm_model=llm_model,
            prompt_template=template,
            output_format=output_format,
            builtin=True,
        )

    return [
        Mode(
            key=DEFAULT_MODE_KEY,
            name="Voice to Text",
            description="Simple voice transcription without AI processing",
            stt_provider=stt_provider,
            stt_model=stt_model,
            ai_processing=False,
            llm_provider=llm_provider,
            builtin=True,
        ),
        ai_mode("message", "Message",
                "Short casual message, cleaned up for chat/SMS", MESSAGE_PROMPT),
        ai_mode("email", "Email",
                "Format transcription as a professional email with subject and body", EMAIL_PROMPT),
        ai_mode("note", "Note",
                "Convert transcription into organized bullet points", NOTE_PROMPT,
                OutputFormat.MARKDOWN),
        ai_mode("meeting", "Meeting",
                "Create meeting summary with key points and action items", MEETING_PROMPT,
                OutputFormat.MARKDOWN),
        ai_mode("super", "Super",
                "Adaptive mode that intelligently formats based on content", SUPER_PROMPT),
    ]


def load_mode_file(path: Path) -> Mode:
    with open(path) as f:
        return Mode.from_dict(json.load(f))


def save_mode_file(mode: Mode, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(mode.to_dict(), f, indent=2)


class ModeRegistry:
    """
    Read-only view of the available modes.

    Usage:
        registry = ModeRegistry(config.modes_dir)
        registry.load()
        mode = registry.get("email")
    """

    def __init__(self, modes_dir: Optional[Path] = None, builtin: Optional[List[Mode]] = None):
        self.modes_dir = Path(modes_dir) if modes_dir else None
        self._builtin = builtin if builtin is not None else create_builtin_modes()
        self._modes: Dict[str, Mode] = {m.key: m for m in self._builtin}
        self._lock = threading.Lock()

    def load(self) -> int:
        """
        Load custom modes from disk on top of the built-ins.

        On first run the modes directory is created and seeded with the
        built-in modes so users have examples to copy.

        Returns:
            Number of modes available
        """
        modes = {m.key: m for m in self._builtin}

        if self.modes_dir is not None:
            if self.modes_dir.exists():
                for path in sorted(self.modes_dir.glob("*.json")):
                    try:
                        mode = load_mode_file(path)
                    except (OSError, ValueError, TypeError) as e:
                        logger.warning("[modes] Failed to load mode from %s: %s", path, e)
                        continue
                    modes[mode.key] = mode
                    logger.info("[modes] Loaded custom mode: %s", mode.key)
            else:
                for mode in self._builtin:
                    save_mode_file(mode, self.modes_dir / f"{mode.key}.json")

        with self._lock:
            self._modes = modes
        logger.info("[modes] Loaded %d modes", len(modes))
        return len(modes)

    def get(self, key: str) -> Optional[Mode]:
        with self._lock:
            return self._modes.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._modes)

    def values(self) -> List[Mode]:
        with self._lock:
            return list(self._modes.values())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
