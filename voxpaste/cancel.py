"""
Cooperative cancellation for voxpaste.

A CancellationToken is created fresh for every dictation session. The caller
signals it once with cancel(); the session checks it at every point where it
blocks (device start, network calls, backoff waits).
"""

import threading
from typing import Callable, TypeVar

T = TypeVar("T")


class Canceled(Exception):
    """Raised when the user cancels a dictation in progress."""

    def __init__(self, message: str = "Request canceled by user"):
        super().__init__(message)


class CancellationToken:
    """
    Write-once cancellation signal shared between a session and its caller.

    Usage:
        token = CancellationToken()
        text = token.run(client.call, audio)   # raises Canceled if signaled
        token.wait(2.0)                        # returns early on cancel()
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], None]] = []
        self._released = False

    @property
    def is_canceled(self) -> bool:
        """Check if cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation. Safe to call repeatedly and from any thread."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            listeners = list(self._listeners)
            self._listeners.clear()

        for listener in listeners:
            listener()

    def raise_if_canceled(self) -> None:
        """Raise Canceled if the token has been signaled."""
        if self._event.is_set():
            raise Canceled()

    def add_listener(self, callback: Callable[[], None]) -> None:
        """
        Call ``callback`` once when the token is signaled.

        If the token is already signaled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._listeners.append(callback)
                return
        callback()

    def remove_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

    def wait(self, seconds: float) -> None:
        """
        Sleep for ``seconds`` unless canceled first.

        Raises:
            Canceled: If the token is signaled before or during the wait.
        """
        self.raise_if_canceled()
        if self._event.wait(timeout=max(seconds, 0.0)):
            raise Canceled()

    def run(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Run a blocking call on a helper thread, racing it against the token.

        Whichever finishes first wins. When the token is signaled first the
        call's eventual result (or error) is discarded.

        Raises:
            Canceled: If the token is signaled before or during the call.
        """
        self.raise_if_canceled()

        done = threading.Event()
        outcome: dict = {}

        def _target() -> None:
            try:
                outcome["value"] = func(*args, **kwargs)
            except BaseException as e:  # re-raised on the caller's thread
                outcome["error"] = e
            finally:
                done.set()

        self.add_listener(done.set)
        try:
            # Signaled between the first check and registering the listener
            if done.is_set():
                raise Canceled()
            threading.Thread(target=_target, daemon=True, name="voxpaste-call").start()
            done.wait()
        finally:
            self.remove_listener(done.set)

        # Cancellation wins even if the call finished in the same instant
        self.raise_if_canceled()
        if "error" in outcome:
            raise outcome["error"]
        return outcome["value"]

    def release(self) -> None:
        """Drop pending listeners at the end of a session."""
        with self._lock:
            self._listeners.clear()
            self._released = True

    @property
    def is_released(self) -> bool:
        return self._released
