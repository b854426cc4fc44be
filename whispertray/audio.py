"""
Audio capture for a single recording session.

Owns one sounddevice input stream while recording, buffers mono float32
blocks, and reports a normalised input level for UI feedback.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

import numpy as np

from .errors import DeviceError, NotCapturing
from .types import AudioDevice, LevelCallback

logger = logging.getLogger(__name__)


# Constants
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_BLOCKSIZE = 1024
LEVEL_FLOOR_DB = -60.0  # Maps to level 0.0; 0 dBFS maps to 1.0


def duration_ms(num_samples: int, sample_rate: int = DEFAULT_SAMPLE_RATE) -> int:
    """Duration in whole milliseconds of num_samples at sample_rate."""
    return num_samples * 1000 // sample_rate


def compute_level(block: np.ndarray) -> float:
    """
    Normalised level of an audio block.

    RMS in dBFS mapped linearly from LEVEL_FLOOR_DB..0 onto 0.0..1.0.
    """
    if len(block) == 0:
        return 0.0

    rms = float(np.sqrt(np.mean(np.square(block, dtype=np.float64))))
    if rms <= 0.0:
        return 0.0

    db = 20 * np.log10(rms)
    level = (db - LEVEL_FLOOR_DB) / -LEVEL_FLOOR_DB
    return float(min(1.0, max(0.0, level)))


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Resample mono audio with a polyphase filter."""
    if source_rate == target_rate or len(audio) == 0:
        return audio.astype(np.float32)

    from math import gcd
    from scipy.signal import resample_poly

    divisor = gcd(int(source_rate), int(target_rate))
    up = int(target_rate) // divisor
    down = int(source_rate) // divisor
    return resample_poly(audio, up, down).astype(np.float32)


def list_input_devices() -> List[AudioDevice]:
    """List input-capable devices, flagging the system default."""
    import sounddevice as sd

    try:
        default_index = sd.default.device[0]
    except (TypeError, IndexError):
        default_index = None

    devices = []
    for i, d in enumerate(sd.query_devices()):
        if d["max_input_channels"] > 0:
            devices.append(AudioDevice(name=d["name"], is_default=(i == default_index)))
    return devices


def find_device(name: str) -> Optional[int]:
    """Find an input device index by name (fuzzy matching)."""
    import sounddevice as sd

    if not name:
        return None

    devices = sd.query_devices()
    wanted = name.lower()

    # Exact match first
    for i, d in enumerate(devices):
        if d["max_input_channels"] > 0 and d["name"].lower() == wanted:
            return i

    # Substring match
    for i, d in enumerate(devices):
        if d["max_input_channels"] > 0 and wanted in d["name"].lower():
            return i

    return None


def save_wav(samples: np.ndarray, path: Path, sample_rate: int = DEFAULT_SAMPLE_RATE) -> None:
    """Write mono float samples as 16-bit PCM WAV."""
    import soundfile as sf

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), np.clip(samples, -1.0, 1.0), sample_rate, format="WAV", subtype="PCM_16")


def load_wav(path: Path, sample_rate: int = DEFAULT_SAMPLE_RATE) -> np.ndarray:
    """Read an audio file as mono float32 at sample_rate."""
    import soundfile as sf

    audio, file_rate = sf.read(str(path), dtype="float32")

    # Convert to mono if stereo
    if audio.ndim > 1:
        audio = np.mean(audio, axis=1)

    return resample(audio, file_rate, sample_rate)


class AudioCapture:
    """
    Records one input stream at a time.

    Thread-safe: start_capture/stop_capture may be called from any thread.
    The level callback runs on the sounddevice callback thread, outside any
    session lock; exceptions it raises are logged and discarded.

    Usage:
        capture = AudioCapture()
        capture.start_capture("USB Mic", level_callback=tray.show_level)
        # ... user speaks ...
        samples = capture.stop_capture()
    """

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE, blocksize: int = DEFAULT_BLOCKSIZE):
        self.sample_rate = sample_rate
        self.blocksize = blocksize

        self._stream = None
        self._stream_rate = sample_rate
        self._blocks: List[np.ndarray] = []
        self._level_callback: Optional[LevelCallback] = None
        self._opening = False
        self._lock = threading.Lock()

    @property
    def is_capturing(self) -> bool:
        with self._lock:
            return self._stream is not None

    def start_capture(self, device: str = "", level_callback: Optional[LevelCallback] = None) -> None:
        """
        Open the input device and begin buffering.

        Falls back to the system default device when `device` is empty or
        not found.

        Raises:
            DeviceError: if already capturing or the device cannot be opened
        """
        import sounddevice as sd

        with self._lock:
            if self._stream is not None or self._opening:
                raise DeviceError("Audio capture already active")
            self._opening = True

        try:
            device_index = find_device(device) if device else None
            if device and device_index is None:
                logger.warning("[audio] Input device not found: %s, using default", device)

            stream = None
            try:
                stream, stream_rate = self._open_stream(sd, device_index)
                stream.start()
            except Exception as e:
                if stream is not None:
                    _close_quietly(stream)
                raise DeviceError(f"Failed to open input device '{device or 'default'}': {e}") from e

            with self._lock:
                self._blocks = []
                self._level_callback = level_callback
                self._stream_rate = stream_rate
                self._stream = stream
        finally:
            with self._lock:
                self._opening = False

        logger.info("[audio] Capture started (device=%s, %d Hz)", device or "default", stream_rate)

    def _open_stream(self, sd, device_index: Optional[int]):
        """Open at the target rate, or at the device's own rate if it refuses."""
        try:
            return self._make_stream(sd, device_index, self.sample_rate), self.sample_rate
        except sd.PortAudioError as e:
            info = sd.query_devices(device_index, "input")
            native_rate = int(info["default_samplerate"])
            if native_rate == self.sample_rate:
                raise
            logger.info("[audio] %d Hz unsupported (%s), recording at %d Hz",
                        self.sample_rate, e, native_rate)
            return self._make_stream(sd, device_index, native_rate), native_rate

    def _make_stream(self, sd, device_index: Optional[int], rate: int):
        return sd.InputStream(
            device=device_index,
            samplerate=rate,
            channels=1,
            dtype=np.float32,
            blocksize=self.blocksize,
            callback=self._audio_callback,
        )

    def stop_capture(self) -> np.ndarray:
        """
        Stop recording and return all buffered samples.

        The stream is closed even if stopping it fails.

        Returns:
            Read-only mono float32 array at self.sample_rate

        Raises:
            NotCapturing: if no capture is active
        """
        with self._lock:
            stream = self._stream
            if stream is None:
                raise NotCapturing()
            self._stream = None
            self._level_callback = None
            blocks, self._blocks = self._blocks, []
            stream_rate = self._stream_rate

        # Close outside the lock to avoid deadlock with the audio callback
        _close_quietly(stream)

        if blocks:
            samples = np.concatenate(blocks)
        else:
            samples = np.array([], dtype=np.float32)

        samples = np.clip(resample(samples, stream_rate, self.sample_rate), -1.0, 1.0)
        samples.setflags(write=False)

        logger.info("[audio] Capture stopped: %.2fs of audio",
                    duration_ms(len(samples), self.sample_rate) / 1000)
        return samples

    def abort(self) -> None:
        """Stop and discard any active capture."""
        try:
            self.stop_capture()
        except NotCapturing:
            pass

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """Called by sounddevice for each audio block."""
        if status:
            logger.debug("[audio] Callback status: %s", status)

        # Make a copy of the audio data
        block = indata.copy().flatten()

        with self._lock:
            if self._stream is None:
                return
            self._blocks.append(block)
            callback = self._level_callback

        if callback is not None:
            try:
                callback(compute_level(block))
            except Exception as e:
                logger.debug("[audio] Level callback failed: %s", e)


def _close_quietly(stream) -> None:
    try:
        stream.stop()
    except Exception as e:
        logger.warning("[audio] Error stopping stream: %s", e)
    finally:
        try:
            stream.close()
        except Exception as e:
            logger.warning("[audio] Error closing stream: %s", e)
