"""
WhisperTray - Tray dictation with pluggable speech-to-text and LLM rewriting.

This package provides:
- Microphone capture with a live input-level feed
- Speech-to-text via a local whisper model, a self-hosted server or the cloud
- Optional LLM rewriting driven by user-selectable modes
- Clipboard/paste delivery and a searchable history

Main entry point: python -m whispertray
"""

__version__ = "0.3.0"
