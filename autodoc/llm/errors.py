"""Classified errors raised by generative backend calls."""

from __future__ import annotations

from typing import Optional


class BackendError(RuntimeError):
    """Base class for a classified backend failure.

    ``retryable`` tells the retry controller whether another attempt may
    succeed; ``kind`` is a short label used in summaries and logs.
    """

    kind = "backend_error"
    retryable = False

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def retry_after(self) -> Optional[float]:
        return None


class AuthenticationError(BackendError):
    """The credential was rejected (401/403)."""

    kind = "unauthorized"


class BadRequestError(BackendError):
    """The backend refused the request itself; resending it cannot help."""

    kind = "bad_request"


class RateLimitedError(BackendError):
    kind = "rate_limited"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, status=status)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> Optional[float]:
        return self._retry_after


class ServerError(BackendError):
    kind = "server_error"
    retryable = True


class NetworkError(BackendError):
    kind = "network_error"
    retryable = True


class RequestTimeoutError(BackendError):
    kind = "timeout"
    retryable = True


__all__ = [
    "AuthenticationError",
    "BackendError",
    "BadRequestError",
    "NetworkError",
    "RateLimitedError",
    "RequestTimeoutError",
    "ServerError",
]
