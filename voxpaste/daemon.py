"""
Dictation controller for voxpaste.

Owns the single active DictationSession and drives it from a push-to-talk
trigger:
press → start recording → press → transcribe → paste (press again to cancel)
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from voxpaste.audio import AudioRecorder
from voxpaste.config import Config, ProviderConfig
from voxpaste.injector import TextInjector
from voxpaste.logger import get_logger
from voxpaste.session import DictationSession, SessionOutcome, SessionStatus
from voxpaste.transcription import TranscriptionClient

logger = get_logger(__name__)

READY_MESSAGE = "Press to start dictation"


class ControllerState(Enum):
    """State of the controller."""
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"


@dataclass
class DictationController:
    """
    Push-to-talk front end over DictationSession.

    At most one session is active; a new one can only start once the
    previous one has reached a terminal status.

    Usage:
        controller = DictationController(on_progress=print)
        controller.toggle()   # start recording
        controller.toggle()   # stop and transcribe in the background
        controller.wait()
    """

    config: Config = field(default_factory=Config.load)
    on_state_change: Optional[Callable[[ControllerState], None]] = None
    on_progress: Optional[Callable[[str], None]] = None
    on_outcome: Optional[Callable[[SessionOutcome], None]] = None
    client_factory: Optional[Callable[[ProviderConfig], TranscriptionClient]] = None
    recorder: Optional[AudioRecorder] = None
    injector: Optional[TextInjector] = None
    status_clear_delay: float = 2.0

    # Internal state
    _state: ControllerState = field(default=ControllerState.IDLE, init=False)
    _session: Optional[DictationSession] = field(default=None, init=False)
    _worker: Optional[threading.Thread] = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self):
        if self.recorder is None:
            self.recorder = AudioRecorder(
                sample_rate=self.config.audio.sample_rate,
                channels=self.config.audio.channels,
                device=self.config.audio.device,
            )
        if self.injector is None:
            self.injector = TextInjector(
                paste_method=self.config.output.paste_method,
                restore_clipboard=self.config.output.restore_clipboard,
                on_fallback=lambda message, text: self._progress(message),
            )

    def _set_state(self, state: ControllerState) -> None:
        """Update state and notify listeners."""
        self._state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception:
                logger.exception("State callback failed")

    def _progress(self, message: str) -> None:
        if self.on_progress:
            try:
                self.on_progress(message)
            except Exception:
                logger.exception("Progress callback failed")

    def _new_session(self) -> DictationSession:
        return DictationSession(
            self.config,
            recorder=self.recorder,
            sink=self.injector.deliver,
            client_factory=self.client_factory,
            on_progress=self._progress,
        )

    def start(self) -> Optional[SessionOutcome]:
        """
        Start recording a new session.

        Returns:
            None if recording started, or the outcome if the session ended
            immediately (not configured, microphone error). Also None when
            another session is still active.
        """
        with self._lock:
            if self._state != ControllerState.IDLE:
                logger.debug("Ignoring start while %s", self._state.value)
                return None
            session = self._new_session()
            self._session = session
            self._set_state(ControllerState.RECORDING)

        outcome = session.begin()
        if outcome is not None:
            self._on_finished(session, outcome)
        return outcome

    def stop(self) -> Optional[threading.Thread]:
        """Stop recording and process the capture on a background thread."""
        with self._lock:
            if self._state != ControllerState.RECORDING or self._session is None:
                return None
            session = self._session
            self._set_state(ControllerState.PROCESSING)

        worker = threading.Thread(
            target=self._process, args=(session,), daemon=True, name="voxpaste-session",
        )
        self._worker = worker
        worker.start()
        return worker

    def _process(self, session: DictationSession) -> None:
        try:
            outcome = session.finish()
        except Exception as e:
            logger.exception("Unexpected session error")
            outcome = SessionOutcome(SessionStatus.FAILED, message=f"Error: {e}")
        self._on_finished(session, outcome)

    def _on_finished(self, session: DictationSession, outcome: SessionOutcome) -> None:
        with self._lock:
            if self._session is session:
                self._session = None
            self._set_state(ControllerState.IDLE)

        if outcome.status is not SessionStatus.SUCCESS:
            self._progress(outcome.message)
        else:
            self._progress("Done")

        if self.on_outcome:
            try:
                self.on_outcome(outcome)
            except Exception:
                logger.exception("Outcome callback failed")

        # Transient statuses clear themselves
        if self.status_clear_delay > 0:
            timer = threading.Timer(self.status_clear_delay, self._clear_status)
            timer.daemon = True
            timer.start()

    def _clear_status(self) -> None:
        if self._session is None and self._state == ControllerState.IDLE:
            self._progress(READY_MESSAGE)

    def toggle(self) -> None:
        """Start, stop, or (while processing) cancel."""
        state = self._state
        if state == ControllerState.IDLE:
            self.start()
        elif state == ControllerState.RECORDING:
            self.stop()
        else:
            self.cancel()

    def cancel(self) -> None:
        """Cancel the active session, whatever it is doing."""
        session = self._session
        if session is None:
            return
        session.cancel()
        if self._state == ControllerState.RECORDING:
            # No worker will pick this session up; finish it here
            self.stop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for background processing to finish.

        Returns:
            True if no processing is running anymore
        """
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            return not worker.is_alive()
        return True

    @property
    def state(self) -> ControllerState:
        """Get current controller state."""
        return self._state

    @property
    def session(self) -> Optional[DictationSession]:
        """The active session, if any."""
        return self._session
