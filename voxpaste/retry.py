"""
Retry coordination for transcription requests.

RetryCoordinator runs a transcription call up to ``max_attempts`` times with
exponential backoff between attempts. Only transient errors (5xx, timeouts,
network failures) are retried; cancellation preempts everything.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from voxpaste.cancel import Canceled, CancellationToken
from voxpaste.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_RETRYABLE_MARKERS = (
    "timeout",
    "timed out",
    "econnreset",
    "connection reset",
    "connection error",
    "connection refused",
    "connection aborted",
    "network",
)


def http_status(error: BaseException) -> Optional[int]:
    """Return the HTTP status carried by an SDK exception, if any."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether an error is worth another attempt.

    Retryable: HTTP 5xx, timeouts, connection resets and other network
    failures. Everything else (auth, validation, other 4xx) is fatal.
    """
    if isinstance(error, Canceled):
        return False

    flag = getattr(error, "retryable", None)
    if isinstance(flag, bool):
        return flag

    status = http_status(error)
    if status is not None and 500 <= status <= 599:
        return True

    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    type_name = type(error).__name__.lower()
    if "timeout" in type_name or "connecterror" in type_name:
        return True

    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


class RetryState(Enum):
    """State of a RetryCoordinator run."""
    IDLE = "idle"
    ATTEMPTING = "attempting"
    AWAITING_BACKOFF = "awaiting_backoff"
    SUCCESS = "success"
    CANCELED = "canceled"
    FAILED_FATAL = "failed_fatal"


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry."""
    max_attempts: int = 3
    initial_backoff_ms: int = 1000
    backoff_multiplier: int = 2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_backoff_ms < 0:
            raise ValueError(f"initial_backoff_ms must be >= 0, got {self.initial_backoff_ms}")

    def backoff_ms(self, retry_index: int) -> int:
        """Delay before retry ``retry_index`` (0-indexed)."""
        return self.initial_backoff_ms * self.backoff_multiplier ** retry_index


@dataclass(frozen=True)
class RetryNotice:
    """Progress notification emitted before each backoff wait."""
    next_attempt: int  # 1-indexed
    max_attempts: int
    wait_seconds: float
    http_status: Optional[int] = None

    @property
    def message(self) -> str:
        hint = f" ({self.http_status})" if self.http_status else ""
        return (
            f"Error{hint}. Retry {self.next_attempt}/{self.max_attempts} "
            f"in {round(self.wait_seconds)} s..."
        )


class RetryCoordinator:
    """
    Drive one call through bounded exponential-backoff retries.

    Usage:
        coordinator = RetryCoordinator(RetryPolicy(), token, on_retry=print)
        result = coordinator.run(lambda: client.transcribe(path, token))
    """

    def __init__(
        self,
        policy: RetryPolicy,
        token: CancellationToken,
        on_retry: Optional[Callable[[RetryNotice], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.policy = policy
        self.token = token
        self.on_retry = on_retry
        self._sleep = sleep or token.wait
        self.state = RetryState.IDLE
        self.attempts = 0
        self.last_error: Optional[BaseException] = None

    def _cancel(self, cause: Optional[BaseException] = None) -> Canceled:
        self.state = RetryState.CANCELED
        error = Canceled()
        error.__cause__ = cause
        return error

    def _notify(self, notice: RetryNotice) -> None:
        if not self.on_retry:
            return
        try:
            self.on_retry(notice)
        except Exception:
            logger.exception("Retry notification callback failed")

    def run(self, call: Callable[[], T]) -> T:
        """
        Run ``call`` until it succeeds, fails fatally, or attempts run out.

        Returns:
            Whatever ``call`` returned on the successful attempt.

        Raises:
            Canceled: If the token is signaled at any point.
            Exception: The last error, when it is fatal or attempts are exhausted.
        """
        max_attempts = self.policy.max_attempts
        attempt = 0

        while attempt < max_attempts:
            if self.token.is_canceled:
                raise self._cancel()

            self.state = RetryState.ATTEMPTING
            self.attempts = attempt + 1
            try:
                result = call()
            except Canceled:
                self.state = RetryState.CANCELED
                raise
            except Exception as e:
                if self.token.is_canceled:
                    raise self._cancel(e)

                self.last_error = e
                if not is_retryable(e) or attempt == max_attempts - 1:
                    self.state = RetryState.FAILED_FATAL
                    logger.debug(
                        "Attempt %d/%d failed, giving up: %s",
                        attempt + 1, max_attempts, e,
                    )
                    raise

                delay_ms = self.policy.backoff_ms(attempt)
                notice = RetryNotice(
                    next_attempt=attempt + 2,
                    max_attempts=max_attempts,
                    wait_seconds=delay_ms / 1000.0,
                    http_status=http_status(e),
                )
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %d ms",
                    attempt + 1, max_attempts, e, delay_ms,
                )
                self._notify(notice)

                self.state = RetryState.AWAITING_BACKOFF
                try:
                    self._sleep(delay_ms / 1000.0)
                except Canceled:
                    self.state = RetryState.CANCELED
                    raise
                attempt += 1
                continue

            if self.token.is_canceled:
                raise self._cancel()

            self.state = RetryState.SUCCESS
            return result

        # Unreachable with max_attempts >= 1
        raise RuntimeError(f"No attempt made (max_attempts={max_attempts})")
