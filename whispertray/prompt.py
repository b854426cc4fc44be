"""
Prompt template rendering for post-processing modes.

Templates support:
    {{transcript}}                  the filtered transcript
    {{language}}                    the configured language code
    {{#if context}}...{{/if}}       kept only when context is available,
                                    may contain {{context}}
"""

import re
from typing import Optional

TRANSCRIPT_PLACEHOLDER = "{{transcript}}"
LANGUAGE_PLACEHOLDER = "{{language}}"
CONTEXT_PLACEHOLDER = "{{context}}"
CONTEXT_BLOCK_OPEN = "{{#if context}}"
CONTEXT_BLOCK_CLOSE = "{{/if}}"

# Non-greedy and DOTALL so a block spanning several lines is removed as one
_CONTEXT_BLOCK_RE = re.compile(r"\{\{#if context\}\}.*?\{\{/if\}\}", re.DOTALL)


def render_prompt(
    template: str,
    transcript: str,
    context: Optional[str],
    language: str,
) -> str:
    """
    Expand a mode template.

    Args:
        template: Mode prompt template
        transcript: Filtered transcript
        context: Captured context (clipboard snapshot), or None
        language: Language code, e.g. "en"

    Returns:
        The rendered prompt, trimmed
    """
    result = template.replace(TRANSCRIPT_PLACEHOLDER, transcript)
    result = result.replace(LANGUAGE_PLACEHOLDER, language)

    if context is not None:
        result = result.replace(CONTEXT_BLOCK_OPEN, "")
        result = result.replace(CONTEXT_BLOCK_CLOSE, "")
        result = result.replace(CONTEXT_PLACEHOLDER, context)
    else:
        result = _CONTEXT_BLOCK_RE.sub("", result)

    return result.strip()
