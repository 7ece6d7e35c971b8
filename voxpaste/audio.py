"""
Audio recording module for voxpaste.

Captures audio from the microphone using sounddevice and hands it over as an
immutable WAV Capture.
"""

import io
import threading
import time
import wave
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from voxpaste.logger import get_logger

logger = get_logger(__name__)


def _sounddevice():
    """Import sounddevice on first use (it loads PortAudio at import time)."""
    import sounddevice

    return sounddevice


class AudioError(Exception):
    """Exception raised for audio-related errors."""
    pass


class DeviceError(AudioError):
    """The microphone is unavailable or access was denied."""
    pass


class RecorderBusyError(AudioError):
    """start() was called while a recording is already running."""
    pass


@dataclass(frozen=True)
class Capture:
    """A finished recording, ready for transcription."""
    data: bytes
    content_type: str = "audio/wav"
    duration: float = 0.0

    @property
    def extension(self) -> str:
        """File extension matching the content type."""
        return "." + self.content_type.split("/")[-1]

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class AudioRecorder:
    """
    Records audio from the microphone.

    Usage:
        recorder = AudioRecorder()
        recorder.start()
        # ... user speaks ...
        capture = recorder.stop()
    """
    sample_rate: int = 16000
    channels: int = 1
    device: Optional[str] = None

    # Internal state
    _recording: bool = field(default=False, init=False)
    _audio_buffer: list = field(default_factory=list, init=False)
    _stream: Optional[Any] = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _started_at: Optional[float] = field(default=None, init=False)

    def _audio_callback(self, indata: np.ndarray, frames: int,
                        time_info: dict, status: Any) -> None:
        """Callback function called for each audio block."""
        if status:
            logger.debug("Audio stream status: %s", status)

        with self._lock:
            if self._recording:
                self._audio_buffer.append(indata.copy())

    def start(self) -> None:
        """
        Start recording audio from the microphone.

        Raises:
            RecorderBusyError: If a recording is already running.
            DeviceError: If no audio device is available or access is denied.
        """
        if self._recording:
            raise RecorderBusyError("Recording already in progress")

        with self._lock:
            self._audio_buffer = []

        try:
            sd = _sounddevice()
        except OSError as e:
            raise DeviceError(f"PortAudio library not available: {e}") from e

        stream = None
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                device=self.device,
                dtype=np.float32,
                callback=self._audio_callback,
            )
            stream.start()
        except Exception as e:
            if stream is not None:
                _close_quietly(stream)
            if isinstance(e, sd.PortAudioError):
                raise DeviceError(f"Microphone unavailable: {e}") from e
            raise DeviceError(f"Audio error: {e}") from e

        self._stream = stream
        self._recording = True
        self._started_at = time.monotonic()
        logger.debug("Recording started (%d Hz, %d ch)", self.sample_rate, self.channels)

    def _release_stream(self) -> None:
        self._recording = False
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def stop(self) -> Optional[Capture]:
        """
        Stop recording and return the capture.

        Returns:
            The recorded audio as a WAV Capture, or None if not recording.
        """
        if not self._recording:
            return None

        self._release_stream()

        with self._lock:
            chunks, self._audio_buffer = self._audio_buffer, []

        if chunks:
            audio = np.concatenate(chunks, axis=0)
        else:
            audio = np.zeros((0, self.channels), dtype=np.float32)

        duration = len(audio) / float(self.sample_rate)
        logger.debug("Recording stopped (%.2fs)", duration)
        return Capture(
            data=to_wav_bytes(audio, sample_rate=self.sample_rate),
            content_type="audio/wav",
            duration=duration,
        )

    def discard(self) -> None:
        """Stop recording and throw the audio away."""
        if not self._recording:
            return
        self._release_stream()
        with self._lock:
            self._audio_buffer = []
        logger.debug("Recording discarded")

    @property
    def is_recording(self) -> bool:
        """Check if currently recording."""
        return self._recording

    @property
    def elapsed(self) -> float:
        """Seconds since recording started (0 when idle)."""
        if not self._recording or self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        devices = []
        for i, dev in enumerate(_sounddevice().query_devices()):
            if dev['max_input_channels'] > 0:
                devices.append({
                    'index': i,
                    'name': dev['name'],
                    'channels': dev['max_input_channels'],
                    'sample_rate': dev['default_samplerate'],
                })
        return devices


def _close_quietly(stream: Any) -> None:
    try:
        stream.close()
    except Exception as e:
        logger.debug("Ignoring error while closing stream: %s", e)


def to_wav_bytes(audio_data: np.ndarray, sample_rate: int = 16000) -> bytes:
    """
    Convert numpy audio array to WAV bytes (mono, 16-bit PCM).

    Args:
        audio_data: Audio as numpy float32 array (values in -1.0 to 1.0)
        sample_rate: Sample rate in Hz (default 16000 for Whisper)

    Returns:
        WAV file as bytes
    """
    # Ensure mono
    if audio_data.ndim > 1:
        audio_data = audio_data.mean(axis=1)

    # Convert float32 (-1.0 to 1.0) to int16
    audio_int16 = (np.clip(audio_data, -1.0, 1.0) * 32767).astype(np.int16)

    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wav_file:
        wav_file.setnchannels(1)  # Mono
        wav_file.setsampwidth(2)  # 16-bit
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(audio_int16.tobytes())

    return buffer.getvalue()
