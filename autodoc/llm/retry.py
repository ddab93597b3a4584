"""Bounded exponential-backoff retry around single backend calls."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from ..cancellation import CancellationToken
from ..logging import get_logger
from .errors import BackendError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_DELAY = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_MAX_DELAY

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed ``attempt`` (1-based)."""
        delay = self.initial_delay * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: T
    attempts: int

    @property
    def retries(self) -> int:
        return self.attempts - 1


class RetryError(RuntimeError):
    """Terminal failure of a retried operation.

    ``fatal`` is true when the backend classified the error as
    non-retryable; otherwise every attempt was used up.
    """

    def __init__(self, cause: BackendError, *, attempts: int, fatal: bool) -> None:
        if fatal:
            message = f"{cause.kind}: {cause} (not retried)"
        else:
            message = f"{cause.kind}: {cause} (gave up after {attempts} attempts)"
        super().__init__(message)
        self.cause = cause
        self.attempts = attempts
        self.fatal = fatal


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BackendError) and exc.retryable


class RetryController:
    """Runs one-shot operations, retrying retryable backend errors with backoff."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or time.sleep
        self.logger = get_logger("retry")

    def execute(
        self,
        operation: Callable[[], T],
        *,
        cancel_token: Optional[CancellationToken] = None,
        label: str | None = None,
    ) -> RetryOutcome[T]:
        """Call ``operation`` until it succeeds, fails fatally, or attempts run out."""
        name = label or getattr(operation, "__name__", "operation")
        max_attempts = self.policy.max_attempts
        attempt = 0
        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            attempt += 1
            try:
                value = operation()
            except BackendError as exc:
                if not exc.retryable:
                    self.logger.warning("%s failed with %s; not retrying: %s", name, exc.kind, exc)
                    raise RetryError(exc, attempts=attempt, fatal=True) from exc
                if attempt >= max_attempts:
                    self.logger.warning(
                        "%s failed with %s on attempt %d/%d; giving up: %s",
                        name,
                        exc.kind,
                        attempt,
                        max_attempts,
                        exc,
                    )
                    raise RetryError(exc, attempts=attempt, fatal=False) from exc
                delay = self._delay_after(exc, attempt)
                self.logger.warning(
                    "%s failed with %s on attempt %d/%d; retrying in %.1fs: %s",
                    name,
                    exc.kind,
                    attempt,
                    max_attempts,
                    delay,
                    exc,
                )
                self._sleep(delay)
                continue
            return RetryOutcome(value=value, attempts=attempt)

    def _delay_after(self, exc: BackendError, attempt: int) -> float:
        hinted = exc.retry_after
        if hinted is not None:
            return max(0.0, hinted)
        return self.policy.delay_for(attempt)


__all__ = [
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_DELAY",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_DELAY",
    "RetryController",
    "RetryError",
    "RetryOutcome",
    "RetryPolicy",
    "is_retryable",
]
