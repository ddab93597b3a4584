"""Structural checks for generated documentation."""

from __future__ import annotations

import re
from typing import List

from ..postproc.lint import MarkdownLinter
from .base import ValidationVerdict, normalise_newlines, strip_wrapping_fence

_ATX_HEADING = re.compile(r"^ {0,3}#{1,6}[ \t]+\S")
_SETEXT_UNDERLINE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
_FENCE = re.compile(r"^ {0,3}(```|~~~)")

# Whole lines of the prompt scaffold; an answer carrying several of them is an echo.
PROMPT_MARKERS = (
    re.compile(r"^Project type: \S+[ \t]*$", re.MULTILINE),
    re.compile(r"^Artifact: .+ \((?:doc|diagram):\w+\)[ \t]*$", re.MULTILINE),
    re.compile(r"^Required sections:[ \t]*$", re.MULTILINE),
    re.compile(r"^Project facts:[ \t]*$", re.MULTILINE),
    re.compile(r"^Entry points:[ \t]*$", re.MULTILINE),
    re.compile(r"^Response rules:[ \t]*$", re.MULTILINE),
)


class DocumentValidator:
    """Accepts markdown that is non-empty, has a heading, and closes its fences."""

    name = "document"

    def __init__(self, linter: MarkdownLinter | None = None) -> None:
        self.linter = linter or MarkdownLinter()

    def validate(self, text: str) -> ValidationVerdict:
        body = strip_wrapping_fence(normalise_newlines(text or ""), ("markdown", "md"))
        if not body.strip():
            return ValidationVerdict.reject("empty response")

        lines = body.split("\n")
        if _has_unclosed_fence(lines):
            return ValidationVerdict.reject("unterminated code fence")
        if not _has_heading(lines):
            return ValidationVerdict.reject("no markdown heading found")
        if looks_like_prompt_echo(body):
            return ValidationVerdict.reject("response echoes the prompt instead of answering it")
        return ValidationVerdict.accept(self.linter.lint(body))


def looks_like_prompt_echo(body: str) -> bool:
    hits = sum(1 for marker in PROMPT_MARKERS if marker.search(body))
    return hits >= 2


def _has_heading(lines: List[str]) -> bool:
    in_code = False
    previous = ""
    for line in lines:
        if _FENCE.match(line):
            in_code = not in_code
            previous = ""
            continue
        if in_code:
            continue
        if _ATX_HEADING.match(line):
            return True
        if previous.strip() and _SETEXT_UNDERLINE.match(line) and not _is_list_item(previous):
            return True
        previous = line
    return False


def _is_list_item(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith(("- ", "* ", "+ ")) or stripped == "-"


def _has_unclosed_fence(lines: List[str]) -> bool:
    open_marker: str | None = None
    for line in lines:
        match = _FENCE.match(line)
        if match is None:
            continue
        marker = match.group(1)
        if open_marker is None:
            open_marker = marker
        elif marker == open_marker:
            open_marker = None
    return open_marker is not None


def validate_document(text: str) -> ValidationVerdict:
    return DocumentValidator().validate(text)


__all__ = ["DocumentValidator", "PROMPT_MARKERS", "looks_like_prompt_echo", "validate_document"]
