"""Normalisation for generated markdown before it is written."""

from __future__ import annotations

from typing import List

_PUNCTUATION = {
    "\u2014": "-",
    "\u2013": "-",
    "\u201c": "\"",
    "\u201d": "\"",
    "\u2018": "'",
    "\u2019": "'",
    "\u00a0": " ",
}


class MarkdownLinter:
    """Normalises newlines, blank runs, heading spacing and typographic punctuation.

    Fenced code is copied verbatim apart from trailing whitespace.
    """

    def lint(self, markdown: str) -> str:
        normalized = markdown.replace("\r\n", "\n").replace("\r", "\n")
        lines = normalized.split("\n")
        cleaned: List[str] = []
        in_code = False
        previous_blank = False

        for line in lines:
            stripped = line.rstrip()
            if stripped.lstrip().startswith("```"):
                in_code = not in_code
                cleaned.append(stripped)
                previous_blank = False
                continue

            if in_code:
                cleaned.append(stripped)
                continue

            stripped = self._fold_punctuation(stripped)
            if stripped.startswith("#") and cleaned and cleaned[-1] != "":
                cleaned.append("")
            if not stripped:
                if previous_blank or not cleaned:
                    continue
                previous_blank = True
                cleaned.append("")
                continue

            cleaned.append(stripped)
            previous_blank = False

        while cleaned and cleaned[-1] == "":
            cleaned.pop()

        return "\n".join(cleaned) + "\n"

    @staticmethod
    def _fold_punctuation(line: str) -> str:
        for source, target in _PUNCTUATION.items():
            if source in line:
                line = line.replace(source, target)
        return line


__all__ = ["MarkdownLinter"]
