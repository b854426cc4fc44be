"""
Non-speech artifact filtering for recognised segments.

Whisper-family models emit markers like "[BLANK_AUDIO]" or "(music)" for
stretches without speech. Those are dropped before segments are joined.
"""

from typing import Iterable

# Lowercased inner text of markers treated as non-speech
NON_SPEECH_MARKERS = frozenset({
    "blank_audio",
    "blank audio",
    "silence",
    "music",
    "applause",
    "laughter",
    "inaudible",
    "no speech",
    "no_speech",
    "no audio",
    "no_audio",
})

_BRACKET_PAIRS = (("[", "]"), ("(", ")"))


def is_non_speech_artifact(segment: str) -> bool:
    """
    Check whether a recognised segment is a non-speech marker.

    Empty (after trimming) segments count as artifacts. Bracketed text
    outside the known vocabulary, e.g. "[custom tag]", is real speech.
    """
    text = segment.strip()
    if not text:
        return True

    for open_char, close_char in _BRACKET_PAIRS:
        if len(text) >= 2 and text.startswith(open_char) and text.endswith(close_char):
            inner = text[1:-1].strip().lower()
            return inner in NON_SPEECH_MARKERS

    return False


def join_segments(segments: Iterable[str]) -> str:
    """Drop artifacts and concatenate the rest in order, without separators."""
    return "".join(s for s in segments if not is_non_speech_artifact(s)).strip()
