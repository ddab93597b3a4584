"""Core validation data structures and helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol

_WRAPPING_FENCE = re.compile(r"\A```[ \t]*([A-Za-z0-9_+-]*)[ \t]*\n(.*?)\n?```[ \t]*\Z", re.DOTALL)


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of validating one backend response.

    ``content`` holds the sanitized text when accepted; ``reason`` explains
    a rejection in a sentence suitable for the run summary.
    """

    accepted: bool
    content: str = ""
    reason: Optional[str] = None

    @classmethod
    def accept(cls, content: str) -> "ValidationVerdict":
        return cls(accepted=True, content=content)

    @classmethod
    def reject(cls, reason: str) -> "ValidationVerdict":
        return cls(accepted=False, reason=reason)


class Validator(Protocol):
    """Protocol implemented by per-kind content validators."""

    name: str

    def validate(self, text: str) -> ValidationVerdict:
        """Check ``text`` and return the sanitized content or a rejection."""


def normalise_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def strip_wrapping_fence(text: str, languages: tuple[str, ...]) -> str:
    """Remove one code fence wrapping the whole response when its language matches.

    Models often answer "```markdown ... ```" even when asked not to. An
    unlabelled fence is unwrapped too.
    """
    stripped = text.strip()
    match = _WRAPPING_FENCE.match(stripped)
    if match is None:
        return stripped
    language = match.group(1).lower()
    if language and language not in languages:
        return stripped
    inner = match.group(2)
    # A nested fence inside means the outer fences were not a single wrapper.
    if "\n```" in f"\n{inner}" and inner.count("```") % 2 == 1:
        return stripped
    return inner.strip()


__all__ = [
    "ValidationVerdict",
    "Validator",
    "normalise_newlines",
    "strip_wrapping_fence",
]
