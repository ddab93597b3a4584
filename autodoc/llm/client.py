"""HTTP client for the remote text-generation backend (OpenAI-compatible API)."""

from __future__ import annotations

import http.client
import json
import os
import socket
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..models import GenerationParams
from .errors import (
    AuthenticationError,
    BackendError,
    BadRequestError,
    NetworkError,
    RateLimitedError,
    RequestTimeoutError,
    ServerError,
)


@dataclass(frozen=True)
class Completion:
    """Text returned by the backend for one prompt."""

    text: str
    finish_reason: Optional[str] = None


@dataclass
class HTTPCall:
    """Everything the transport needs to perform one completion call."""

    url: str
    headers: dict[str, str]
    payload: dict[str, object]
    timeout: float


class GenerativeClient:
    """Sends prompts to a chat-completions endpoint and classifies failures."""

    DEFAULT_MODEL = "gemini-2.0-flash"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"
    ENV_API_KEY_KEYS = ("AUTODOC_API_KEY", "GEMINI_API_KEY", "OPENAI_API_KEY")
    ENV_MODEL_KEYS = ("AUTODOC_MODEL",)
    ENV_BASE_URL_KEYS = ("AUTODOC_BASE_URL",)

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        base_url: str | None = None,
        request_timeout: float = 30.0,
        transport: Callable[[HTTPCall], Mapping[str, object]] | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.request_timeout = request_timeout
        self._transport = transport or self._http_transport

    def send(
        self,
        prompt: str,
        params: GenerationParams,
        *,
        system: str | None = None,
    ) -> Completion:
        """Send one prompt and return the completion, raising a ``BackendError`` on failure."""
        payload: dict[str, object] = {
            "model": self.model,
            "messages": self._build_messages(system, prompt),
            "temperature": params.temperature,
            "max_tokens": params.max_output_tokens,
        }
        call = HTTPCall(
            url=f"{self.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            payload=payload,
            timeout=self.request_timeout,
        )
        response = self._transport(call)
        return self._parse_completion(response)

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _http_transport(call: HTTPCall) -> Mapping[str, object]:
        data = json.dumps(call.payload).encode("utf-8")
        request = Request(call.url, data=data, headers=call.headers, method="POST")
        try:
            with urlopen(request, timeout=call.timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            raise classify_http_error(exc) from exc
        except URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise RequestTimeoutError(
                    f"Backend request timed out after {call.timeout:.0f}s"
                ) from exc
            raise NetworkError(f"Backend unreachable: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise RequestTimeoutError(
                f"Backend request timed out after {call.timeout:.0f}s"
            ) from exc
        except (ConnectionError, OSError) as exc:
            raise NetworkError(f"Backend connection failed: {exc}") from exc
        except http.client.HTTPException as exc:
            raise NetworkError(f"Backend response was incomplete or malformed: {exc!r}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ServerError("Backend returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ServerError("Backend returned an unexpected payload")
        return payload

    @staticmethod
    def _parse_completion(payload: Mapping[str, object]) -> Completion:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return Completion(text="", finish_reason=None)
        first = choices[0]
        if not isinstance(first, dict):
            return Completion(text="", finish_reason=None)
        finish_reason = first.get("finish_reason")
        finish = finish_reason if isinstance(finish_reason, str) else None
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return Completion(text=content, finish_reason=finish)
        text = first.get("text")
        if isinstance(text, str):
            return Completion(text=text, finish_reason=finish)
        return Completion(text="", finish_reason=finish)

    @classmethod
    def resolve_api_key(cls, explicit: str | None = None) -> str | None:
        if explicit:
            return explicit
        return _first_env_value(cls.ENV_API_KEY_KEYS)

    @classmethod
    def resolve_model(cls, explicit: str | None = None) -> str:
        return explicit or _first_env_value(cls.ENV_MODEL_KEYS) or cls.DEFAULT_MODEL

    @classmethod
    def resolve_base_url(cls, explicit: str | None = None) -> str:
        return explicit or _first_env_value(cls.ENV_BASE_URL_KEYS) or cls.DEFAULT_BASE_URL


def classify_http_error(exc: HTTPError) -> BackendError:
    """Map an HTTP error response onto the backend error taxonomy."""
    status = exc.code
    detail = _read_error_detail(exc)
    message = f"Backend returned HTTP {status}" + (f": {detail}" if detail else "")
    if status in (401, 403):
        return AuthenticationError(message, status=status)
    if status == 429:
        retry_after = parse_retry_after(exc.headers.get("Retry-After") if exc.headers else None)
        return RateLimitedError(message, status=status, retry_after=retry_after)
    if status == 408:
        return RequestTimeoutError(message, status=status)
    if status >= 500:
        return ServerError(message, status=status)
    return BadRequestError(message, status=status)


def parse_retry_after(value: str | None) -> Optional[float]:
    """Parse a Retry-After header given either as seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            moment = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        seconds = (moment - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, seconds)


def _read_error_detail(exc: HTTPError) -> str:
    try:
        body = exc.read().decode("utf-8", errors="ignore")
    except Exception:  # pragma: no cover - depends on runtime
        return str(exc.reason or "")
    body = " ".join(body.split())
    if not body:
        return str(exc.reason or "")
    return body[:300]


def _first_env_value(keys: Sequence[str]) -> str | None:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


__all__ = [
    "Completion",
    "GenerativeClient",
    "HTTPCall",
    "classify_http_error",
    "parse_retry_after",
]
