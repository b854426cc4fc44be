"""
Error kinds raised by the recording core.

Fatal kinds abort a session and move status to Error. CompletionFailed,
PersistenceFailed and DeliveryFailed are recovered inside the pipeline.
"""


class WhisperTrayError(Exception):
    """Base class for every error the core raises."""


class RecordingInProgress(WhisperTrayError):
    def __init__(self, message: str = "A recording is already in progress"):
        super().__init__(message)


class NoRecordingInProgress(WhisperTrayError):
    def __init__(self, message: str = "No recording in progress"):
        super().__init__(message)


class ModeNotFound(WhisperTrayError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Mode not found: {key}")


class DeviceError(WhisperTrayError):
    pass


class NotCapturing(WhisperTrayError):
    def __init__(self, message: str = "Audio capture is not active"):
        super().__init__(message)


class ModelUnavailable(WhisperTrayError):
    def __init__(self, model: str, detail: str = ""):
        self.model = model
        self.detail = detail
        message = f"Model unavailable: {model}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class MissingCredential(WhisperTrayError):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider} requires an API key. Add it in Settings.")


class UnsupportedProvider(WhisperTrayError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unsupported provider: {name}")


class TranscriptionFailed(WhisperTrayError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Transcription failed: {detail}")


class CompletionFailed(WhisperTrayError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Completion failed: {detail}")


class PersistenceFailed(WhisperTrayError):
    pass


class DeliveryFailed(WhisperTrayError):
    pass
