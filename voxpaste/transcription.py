"""
Speech-to-text clients for voxpaste.

Two provider families are supported:

* direct-file providers (OpenAI, Groq): the audio file goes out in a single
  ``audio.transcriptions.create`` request and plain text comes back;
* upload-then-generate providers (Google Gemini): the audio is uploaded first,
  then a generation request referencing the upload asks for the transcript.

Every network call is raced against the session's CancellationToken, and SDK
exceptions are translated into RetryableTransportError / FatalProviderError.
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from voxpaste.cancel import Canceled, CancellationToken
from voxpaste.config import ProviderConfig, ProviderKind
from voxpaste.logger import get_logger
from voxpaste.retry import http_status, is_retryable

logger = get_logger(__name__)


OPENAI_MODEL = "gpt-4o-transcribe"
GROQ_MODEL = "whisper-large-v3-turbo"
GEMINI_MODEL = "gemini-2.5-flash"

TRANSCRIPT_INSTRUCTION = (
    "Generate a transcript of the speech. Output only the transcript text "
    "without any additional formatting or explanation. Remove disfluencies "
    "and filler words."
)


class ProviderError(Exception):
    """Exception raised for speech-to-text provider errors."""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RetryableTransportError(ProviderError):
    """Transient failure: 5xx, timeout or network error."""
    retryable = True


class FatalProviderError(ProviderError):
    """Failure that retrying cannot fix (auth, validation, 4xx)."""
    retryable = False


@dataclass
class TranscriptResult:
    """Result from audio transcription."""
    text: str
    provider: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True when nothing but whitespace came back (no speech detected)."""
        return not self.text.strip()


def translate_error(error: BaseException, provider: str) -> ProviderError:
    """Map an SDK exception onto the provider error taxonomy."""
    if isinstance(error, ProviderError):
        return error

    status = http_status(error)
    message = getattr(error, "message", None) or str(error) or type(error).__name__
    message = f"{provider}: {message}"
    if is_retryable(error):
        return RetryableTransportError(message, status)
    return FatalProviderError(message, status)


class TranscriptionClient(ABC):
    """Common interface of all speech-to-text providers."""

    name: str = "provider"

    @abstractmethod
    def transcribe(self, audio_path: Path, token: CancellationToken) -> TranscriptResult:
        """
        Transcribe an audio file.

        Args:
            audio_path: Audio file to send (WAV)
            token: Cancellation token of the calling session

        Returns:
            TranscriptResult, possibly with empty text

        Raises:
            Canceled: If the token is signaled before or during the call
            ProviderError: If the provider rejects or fails the request
        """


class DirectFileClient(TranscriptionClient):
    """
    Single-request providers with an OpenAI-style ``audio.transcriptions`` API.

    Usage:
        client = DirectFileClient.for_openai(api_key="sk-...")
        result = client.transcribe(Path("audio.wav"), CancellationToken())
        print(result.text)
    """

    def __init__(self, sdk_client: Any, model: str, language: Optional[str] = None,
                 name: str = "openai"):
        self._client = sdk_client
        self.model = model
        self.language = language
        self.name = name

    @classmethod
    def for_openai(cls, api_key: str, language: Optional[str] = None,
                   timeout: float = 60.0) -> "DirectFileClient":
        from openai import OpenAI

        # Retries are handled by RetryCoordinator, not by the SDK
        sdk = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        return cls(sdk, model=OPENAI_MODEL, language=language, name="openai")

    @classmethod
    def for_groq(cls, api_key: str, language: Optional[str] = None,
                 timeout: float = 60.0) -> "DirectFileClient":
        from groq import Groq

        sdk = Groq(api_key=api_key, timeout=timeout, max_retries=0)
        return cls(sdk, model=GROQ_MODEL, language=language, name="groq")

    def _request(self, audio_path: Path) -> Any:
        with open(audio_path, "rb") as audio_file:
            params = {
                "file": audio_file,
                "model": self.model,
                "response_format": "text",
            }
            if self.language:
                params["language"] = self.language
            return self._client.audio.transcriptions.create(**params)

    def transcribe(self, audio_path: Path, token: CancellationToken) -> TranscriptResult:
        token.raise_if_canceled()
        try:
            response = token.run(self._request, Path(audio_path))
        except Canceled:
            raise
        except Exception as e:
            raise translate_error(e, self.name) from e

        # response_format="text" yields a str; some SDK versions wrap it
        if isinstance(response, str):
            text = response
        else:
            text = getattr(response, "text", None) or ""
        logger.debug("%s returned %d chars", self.name, len(text))
        return TranscriptResult(text=text, provider=self.name)


class GeminiClient(TranscriptionClient):
    """
    Google Gemini: upload the audio, then ask the model for a transcript.

    Usage:
        client = GeminiClient.from_api_key(api_key="...")
        result = client.transcribe(Path("audio.wav"), CancellationToken())
    """

    name = "google"

    def __init__(self, sdk_client: Any, model: str = GEMINI_MODEL,
                 mime_type: str = "audio/wav"):
        self._client = sdk_client
        self.model = model
        self.mime_type = mime_type

    @classmethod
    def from_api_key(cls, api_key: str, timeout: float = 60.0) -> "GeminiClient":
        from google import genai
        from google.genai import types

        sdk = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        return cls(sdk)

    def _generate(self, uploaded: Any) -> Any:
        from google.genai import types

        audio_part = types.Part.from_uri(
            file_uri=uploaded.uri,
            mime_type=getattr(uploaded, "mime_type", None) or self.mime_type,
        )
        return self._client.models.generate_content(
            model=self.model,
            contents=[audio_part, TRANSCRIPT_INSTRUCTION],
        )

    def _delete_remote(self, name: str) -> None:
        try:
            self._client.files.delete(name=name)
        except Exception as e:
            logger.debug("Could not delete uploaded file %s: %s", name, e)

    def transcribe(self, audio_path: Path, token: CancellationToken) -> TranscriptResult:
        token.raise_if_canceled()
        lock = threading.Lock()
        upload = {"file": None, "abandoned": False}

        def _upload() -> Any:
            uploaded = self._client.files.upload(
                file=str(audio_path),
                config={"mime_type": self.mime_type},
            )
            with lock:
                late = upload["abandoned"]
                if not late:
                    upload["file"] = uploaded
            if late:
                # transcribe() already gave up on this upload
                name = getattr(uploaded, "name", None)
                if name:
                    self._delete_remote(name)
            return uploaded

        try:
            uploaded = token.run(_upload)
            token.raise_if_canceled()
            response = token.run(self._generate, uploaded)
        except Canceled:
            raise
        except Exception as e:
            raise translate_error(e, self.name) from e
        finally:
            with lock:
                upload["abandoned"] = True
                remote_name = getattr(upload["file"], "name", None)
            if remote_name:
                threading.Thread(
                    target=self._delete_remote, args=(remote_name,), daemon=True
                ).start()

        text = extract_text(response)
        logger.debug("google returned %d chars", len(text))
        return TranscriptResult(text=text, provider=self.name)


def _field(obj: Any, name: str) -> Any:
    """Read ``name`` from a mapping or an object, None when absent."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    try:
        return getattr(obj, name, None)
    except Exception:
        # SDK convenience properties may raise on unexpected shapes
        return None


def extract_text(response: Any) -> str:
    """
    Pull the transcript out of a Gemini generate_content response.

    The direct ``text`` field wins when it holds non-blank text. Otherwise the
    parts of the first candidate are concatenated without a separator. Both
    SDK objects and plain dicts are accepted.

    Returns:
        The transcript, or "" when the response carries no text.
    """
    direct = _field(response, "text")
    if isinstance(direct, str) and direct.strip():
        return direct

    candidates = _field(response, "candidates")
    if not candidates:
        candidates = _field(_field(response, "response"), "candidates")
    if not candidates:
        return ""

    parts = _field(_field(candidates[0], "content"), "parts")
    if not parts:
        return ""

    return "".join(
        text for text in (_field(part, "text") for part in parts)
        if isinstance(text, str)
    )


def create_client(provider: ProviderConfig, timeout: float = 60.0) -> TranscriptionClient:
    """Build the transcription client for the selected provider."""
    if provider.kind is ProviderKind.OPENAI:
        return DirectFileClient.for_openai(provider.api_key, provider.language, timeout)
    if provider.kind is ProviderKind.GROQ:
        return DirectFileClient.for_groq(provider.api_key, provider.language, timeout)
    if provider.kind is ProviderKind.GOOGLE:
        return GeminiClient.from_api_key(provider.api_key, timeout)
    raise ValueError(f"Unsupported provider: {provider.kind}")
