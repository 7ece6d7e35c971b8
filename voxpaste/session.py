"""
One dictation attempt, end to end.

A DictationSession records (optionally), writes the capture to a temporary
WAV file, runs the transcription through the RetryCoordinator, hands the text
to the delivery sink and always cleans up after itself. Every session owns a
fresh CancellationToken; cancel() may be called from any thread at any time.
"""

import os
import tempfile
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from voxpaste.audio import AudioError, AudioRecorder, Capture
from voxpaste.cancel import Canceled, CancellationToken
from voxpaste.config import Config, NotConfiguredError, ProviderConfig
from voxpaste.logger import get_logger
from voxpaste.retry import RetryCoordinator, RetryNotice, RetryPolicy, http_status
from voxpaste.transcription import TranscriptionClient, create_client

logger = get_logger(__name__)


class SessionPhase(Enum):
    """Where a session currently is."""
    IDLE = "idle"
    RECORDING = "recording"
    PREPARING = "preparing"
    TRANSCRIBING = "transcribing"
    DELIVERING = "delivering"
    DONE = "done"


class SessionStatus(Enum):
    """Terminal, user-visible result of a session."""
    SUCCESS = "success"
    NO_SPEECH = "no_speech"
    CANCELED = "canceled"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"


@dataclass
class SessionOutcome:
    """How a session ended."""
    status: SessionStatus
    text: str = ""
    message: str = ""
    http_status: Optional[int] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status is SessionStatus.SUCCESS


class DictationSession:
    """
    Orchestrates one dictation: record → temp file → transcribe → deliver.

    Usage:
        session = DictationSession(config, recorder=recorder, sink=injector.deliver)
        session.begin()              # starts the microphone
        outcome = session.finish()   # stops, transcribes, delivers
        # or, from another thread at any time:
        session.cancel()
    """

    def __init__(
        self,
        config: Config,
        recorder: Optional[AudioRecorder] = None,
        sink: Optional[Callable[[str], Any]] = None,
        client_factory: Optional[Callable[[ProviderConfig], TranscriptionClient]] = None,
        policy: Optional[RetryPolicy] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        on_status_change: Optional[Callable[[SessionStatus], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.id = uuid.uuid4().hex
        self.config = config
        self.recorder = recorder
        self.sink = sink
        self.client_factory = client_factory or create_client
        self.policy = policy or RetryPolicy(
            max_attempts=config.retry.max_attempts,
            initial_backoff_ms=config.retry.initial_backoff_ms,
        )
        self.on_progress = on_progress
        self.on_status_change = on_status_change
        self._sleep = sleep

        self.token = CancellationToken()
        self.attempts = 0
        self.last_error: Optional[BaseException] = None
        self.outcome: Optional[SessionOutcome] = None

        self._phase = SessionPhase.IDLE
        self._lock = threading.Lock()
        self._artifact: Optional[Path] = None
        self._owns_artifact = False
        self._cleaned = False

    # ---------- State ----------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_terminal(self) -> bool:
        return self._phase is SessionPhase.DONE

    @property
    def is_canceled(self) -> bool:
        return self.token.is_canceled

    def _set_phase(self, phase: SessionPhase) -> None:
        with self._lock:
            if self._phase is SessionPhase.DONE:
                return
            self._phase = phase
        logger.debug("Session %s → %s", self.id[:8], phase.value)

    def _progress(self, message: str) -> None:
        if not self.on_progress:
            return
        try:
            self.on_progress(message)
        except Exception:
            logger.exception("Progress callback failed")

    def _on_retry(self, notice: RetryNotice) -> None:
        self.attempts = notice.next_attempt - 1
        self._progress(notice.message)

    def _provider(self) -> ProviderConfig:
        try:
            return self.config.provider_config()
        except ValueError as e:
            raise NotConfiguredError(str(e)) from e

    # ---------- Recording ----------

    def begin(self) -> Optional[SessionOutcome]:
        """
        Check the configuration and start recording.

        Returns:
            None while recording, or the terminal outcome if the session could
            not start (not configured, microphone unavailable, canceled).
        """
        if self.recorder is None:
            raise RuntimeError("Session has no recorder")
        if self._phase is not SessionPhase.IDLE:
            raise RuntimeError(f"Session already {self._phase.value}")

        try:
            self._provider()
            self.token.raise_if_canceled()
            self.recorder.start()
        except NotConfiguredError as e:
            return self._finalize(self._not_configured(e))
        except Canceled:
            return self._finalize(self._canceled())
        except AudioError as e:
            self.last_error = e
            logger.error("Session %s: recording failed: %s", self.id[:8], e)
            return self._finalize(SessionOutcome(SessionStatus.FAILED, message=str(e)))

        self._set_phase(SessionPhase.RECORDING)
        self._progress("Recording... press again to finish")
        return None

    def finish(self) -> SessionOutcome:
        """Stop recording and run the capture through transcription and delivery."""
        if self.is_terminal:
            return self.outcome
        if self.recorder is None:
            raise RuntimeError("Session has no recorder")

        try:
            capture = self.recorder.stop()
        except Exception as e:
            self.last_error = e
            logger.error("Session %s: stopping the recorder failed: %s", self.id[:8], e)
            return self._finalize(SessionOutcome(
                SessionStatus.FAILED, message=f"Error: {e}",
            ))
        if self.token.is_canceled:
            return self._finalize(self._canceled())
        if capture is None or capture.duration <= 0:
            return self._finalize(SessionOutcome(
                SessionStatus.NO_SPEECH, message="No speech detected",
            ))
        return self.process(capture)

    # ---------- Transcription ----------

    def process(self, capture: Capture) -> SessionOutcome:
        """
        Transcribe and deliver a finished capture.

        The capture is written to a temporary file that is deleted again on
        every exit path.
        """
        def _prepare() -> Path:
            fd, name = tempfile.mkstemp(prefix="voxpaste_", suffix=capture.extension)
            self._artifact = Path(name)
            self._owns_artifact = True
            with os.fdopen(fd, "wb") as f:
                f.write(capture.data)
            return self._artifact

        return self._execute(_prepare)

    def transcribe_file(self, audio_path: Path) -> SessionOutcome:
        """Run an existing audio file through the pipeline. The file is kept."""
        def _prepare() -> Path:
            path = Path(audio_path)
            if not path.is_file():
                raise FileNotFoundError(f"Audio file '{path}' not found")
            self._artifact = path
            self._owns_artifact = False
            return path

        return self._execute(_prepare)

    def _execute(self, prepare: Callable[[], Path]) -> SessionOutcome:
        with self._lock:
            if self._phase not in (SessionPhase.IDLE, SessionPhase.RECORDING):
                raise RuntimeError(f"Session already {self._phase.value}")
            self._phase = SessionPhase.PREPARING

        try:
            outcome = self._pipeline(prepare)
        finally:
            self._cleanup()
        return self._finalize(outcome)

    def _pipeline(self, prepare: Callable[[], Path]) -> SessionOutcome:
        try:
            provider = self._provider()
            self.token.raise_if_canceled()

            self._progress("Processing audio...")
            audio_path = prepare()
            client = self.client_factory(provider)

            self._set_phase(SessionPhase.TRANSCRIBING)
            self._progress("Recognizing speech...")
            coordinator = RetryCoordinator(
                self.policy, self.token, on_retry=self._on_retry, sleep=self._sleep,
            )
            try:
                result = coordinator.run(lambda: client.transcribe(audio_path, self.token))
            finally:
                self.attempts = coordinator.attempts

            self.token.raise_if_canceled()
            if result.is_empty:
                logger.info("Session %s: no speech detected", self.id[:8])
                return SessionOutcome(
                    SessionStatus.NO_SPEECH,
                    message="No speech detected",
                    attempts=self.attempts,
                )

            text = result.text.strip()
            self._set_phase(SessionPhase.DELIVERING)
            self._progress("Pasting text...")
            if self.sink:
                self.sink(text)
            logger.info("Session %s: delivered %d chars", self.id[:8], len(text))
            return SessionOutcome(SessionStatus.SUCCESS, text=text, attempts=self.attempts)

        except NotConfiguredError as e:
            return self._not_configured(e)
        except Canceled:
            return self._canceled()
        except Exception as e:
            self.last_error = e
            status = http_status(e)
            suffix = f" ({status})" if status else ""
            logger.error("Session %s failed after %d attempt(s): %s%s",
                         self.id[:8], self.attempts, e, suffix)
            return SessionOutcome(
                SessionStatus.FAILED,
                message=f"Error: {e}{suffix}",
                http_status=status,
                attempts=self.attempts,
            )

    def _not_configured(self, error: NotConfiguredError) -> SessionOutcome:
        self.last_error = error
        logger.warning("Session %s: %s", self.id[:8], error)
        return SessionOutcome(SessionStatus.NOT_CONFIGURED, message=f"Error: {error}")

    def _canceled(self) -> SessionOutcome:
        logger.warning("Session %s canceled by user", self.id[:8])
        return SessionOutcome(
            SessionStatus.CANCELED, message="Request canceled", attempts=self.attempts,
        )

    # ---------- Teardown ----------

    def _cleanup(self) -> None:
        """Delete the temporary file and release the token, exactly once."""
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True

        if self._artifact is not None and self._owns_artifact:
            try:
                self._artifact.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not delete %s: %s", self._artifact, e)
        self.token.release()

    def _finalize(self, outcome: SessionOutcome) -> SessionOutcome:
        self._cleanup()
        with self._lock:
            if self._phase is SessionPhase.DONE:
                return self.outcome
            self._phase = SessionPhase.DONE
            self.outcome = outcome

        if self.on_status_change:
            try:
                self.on_status_change(outcome.status)
            except Exception:
                logger.exception("Status callback failed")
        return outcome

    def cancel(self) -> None:
        """
        Cancel the session. Safe at any phase; does nothing once finished.

        While recording, the audio is discarded. During upload, transcription
        or a backoff wait the pending step stops as soon as it notices.
        """
        if self.is_terminal:
            return
        logger.info("Session %s: cancel requested", self.id[:8])
        self.token.cancel()
        if self._phase is SessionPhase.RECORDING and self.recorder is not None:
            try:
                self.recorder.discard()
            except Exception:
                logger.exception("Could not discard recording")
        self._progress("Canceling...")
