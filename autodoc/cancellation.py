"""Cooperative cancellation shared by the suspension points of a generation run."""

from __future__ import annotations

import threading


class OperationCancelled(RuntimeError):
    """Raised at a suspension point once cancellation has been requested."""


class CancellationToken:
    """Thread-safe flag checked wherever the pipeline may block.

    The flag is usually set from a signal handler while the main flow is
    sleeping, so waits go through :meth:`sleep` instead of ``time.sleep``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Generation cancelled by user")

    def sleep(self, seconds: float) -> None:
        """Wait up to ``seconds``, raising early if cancellation is requested."""
        self.raise_if_cancelled()
        if seconds > 0 and self._event.wait(seconds):
            raise OperationCancelled("Generation cancelled by user")


__all__ = ["CancellationToken", "OperationCancelled"]
