"""Backend client, throttling and retry for generative calls."""

from .client import Completion, GenerativeClient
from .errors import (
    AuthenticationError,
    BackendError,
    BadRequestError,
    NetworkError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
)
from .rate_limiter import RateLimiter
from .retry import RetryController, RetryError, RetryOutcome, RetryPolicy

__all__ = [
    "AuthenticationError",
    "BackendError",
    "BadRequestError",
    "Completion",
    "GenerativeClient",
    "NetworkError",
    "RateLimitedError",
    "RateLimiter",
    "RequestTimeoutError",
    "RetryController",
    "RetryError",
    "RetryOutcome",
    "RetryPolicy",
    "ServerError",
]
