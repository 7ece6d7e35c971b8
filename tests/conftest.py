"""
Shared fixtures for voxpaste tests.

Provides a scripted transcription client so the session and retry logic can be
exercised without network access or audio hardware.
"""

import threading
from pathlib import Path

import pytest

from voxpaste.audio import Capture, to_wav_bytes
from voxpaste.cancel import CancellationToken
from voxpaste.config import ApiConfig, Config
from voxpaste.transcription import TranscriptionClient, TranscriptResult


class ScriptedClient(TranscriptionClient):
    """
    Transcription client that plays back a list of steps, one per call.

    A step is either a string (returned as transcript text), an exception
    (raised), or a callable taking the token (its return value is the text).
    """

    name = "fake"

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0
        self.paths: list[Path] = []
        self.existed: list[bool] = []

    def transcribe(self, audio_path: Path, token: CancellationToken) -> TranscriptResult:
        token.raise_if_canceled()
        self.calls += 1
        self.paths.append(Path(audio_path))
        self.existed.append(Path(audio_path).exists())

        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = step(token)
        return TranscriptResult(text=step, provider=self.name)


def blocking_step(release: threading.Event, text: str = "late text"):
    """Step that blocks inside token.run() until ``release`` is set."""
    def _network_call() -> str:
        release.wait(5)
        return text

    def _step(token: CancellationToken) -> str:
        return token.run(_network_call)
    return _step


@pytest.fixture
def config():
    """Config with an OpenAI key and fast retries."""
    return Config(api=ApiConfig(provider="openai", openai_api_key="sk-test-key"))


@pytest.fixture
def unconfigured():
    """Config whose selected provider has no key."""
    return Config(api=ApiConfig(provider="google", openai_api_key="sk-test-key"))


@pytest.fixture
def capture():
    """One second of silence as a WAV capture."""
    import numpy as np

    audio = np.zeros(16000, dtype=np.float32)
    return Capture(data=to_wav_bytes(audio), content_type="audio/wav", duration=1.0)
