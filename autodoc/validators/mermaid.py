"""Syntax sanity checks for generated Mermaid diagrams.

This is not a Mermaid parser. It catches the failure modes seen from
language models: prose instead of a diagram, a missing diagram keyword,
unbalanced brackets, and ``subgraph``/``loop`` blocks without ``end``.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from .base import ValidationVerdict, normalise_newlines, strip_wrapping_fence

MERMAID_KEYWORDS: Tuple[str, ...] = (
    "graph",
    "flowchart",
    "sequenceDiagram",
    "classDiagram",
    "classDiagram-v2",
    "stateDiagram",
    "stateDiagram-v2",
    "erDiagram",
    "journey",
    "gantt",
    "pie",
    "gitGraph",
    "mindmap",
    "timeline",
    "quadrantChart",
    "requirementDiagram",
    "C4Context",
    "C4Container",
    "C4Component",
    "C4Dynamic",
    "C4Deployment",
    "sankey-beta",
    "xychart-beta",
    "block-beta",
    "packet-beta",
    "architecture-beta",
)

BLOCK_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "graph": ("subgraph",),
    "flowchart": ("subgraph",),
    "sequenceDiagram": ("loop", "alt", "opt", "par", "critical", "break", "rect", "box"),
}

_MERMAID_BLOCK_RE = re.compile(r"^[ \t]*```[ \t]*mermaid[ \t]*\n(.*?)^[ \t]*```", re.MULTILINE | re.DOTALL)
_PAIRS = {")": "(", "]": "[", "}": "{"}

# Node shapes such as mindmap's ``))bang((`` are intentionally unbalanced.
_FREEFORM_SHAPES = {"mindmap"}
_COLON_LABELLED = {
    "sequenceDiagram",
    "stateDiagram",
    "stateDiagram-v2",
    "erDiagram",
    "journey",
    "gantt",
    "timeline",
    "pie",
}
_QUOTED = re.compile(r'"[^"\n]*"')
_EDGE_LABEL = re.compile(r"\|[^|\n]*\|")
_ER_CARDINALITY = re.compile(r"[|}][o|](?:--|\.\.)[o|][|{]")
_ASYMMETRIC_NODE = re.compile(r"\b(\w+)>([^\]\n]*)\]")


def extract_mermaid_blocks(content: str) -> List[Tuple[int, str]]:
    """Return ``(line_number, source)`` for every fenced mermaid block (1-based lines)."""
    results: List[Tuple[int, str]] = []
    for match in _MERMAID_BLOCK_RE.finditer(normalise_newlines(content)):
        line_number = content[: match.start()].count("\n") + 1
        results.append((line_number, match.group(1)))
    return results


def diagram_keyword(line: str) -> Optional[str]:
    """Return the Mermaid keyword that opens ``line``, if any."""
    head = line.strip().split(None, 1)[0] if line.strip() else ""
    head = head.rstrip(":;")
    for keyword in MERMAID_KEYWORDS:
        if head == keyword:
            return keyword
    return None


class DiagramValidator:
    """Accepts text that opens with a Mermaid keyword and nests its blocks correctly."""

    name = "diagram"

    def validate(self, text: str) -> ValidationVerdict:
        source = _extract_source(normalise_newlines(text or ""))
        if not source.strip():
            return ValidationVerdict.reject("empty response")

        lines = source.split("\n")
        index = _skip_preamble(lines)
        if index >= len(lines):
            return ValidationVerdict.reject("no diagram found after front matter and comments")

        keyword = diagram_keyword(lines[index])
        if keyword is None:
            first = lines[index].strip()
            preview = first if len(first) <= 40 else first[:37] + "..."
            return ValidationVerdict.reject(f"no recognised Mermaid diagram keyword (starts with {preview!r})")

        statements = [line for line in lines[index + 1 :] if _is_statement(line)]
        if not statements:
            return ValidationVerdict.reject(f"{keyword} diagram has no statements")

        bracket_error = None
        if keyword not in _FREEFORM_SHAPES:
            bracket_error = _check_brackets(lines[index + 1 :], keyword, first_line=index + 2)
        if bracket_error:
            return ValidationVerdict.reject(bracket_error)

        block_error = _check_blocks(lines[index + 1 :], keyword)
        if block_error:
            return ValidationVerdict.reject(block_error)

        cleaned = "\n".join(line.rstrip() for line in lines).strip("\n")
        return ValidationVerdict.accept(cleaned + "\n")


def _extract_source(text: str) -> str:
    unwrapped = strip_wrapping_fence(text, ("mermaid",))
    if unwrapped != text.strip():
        return unwrapped
    blocks = extract_mermaid_blocks(text)
    if blocks:
        return blocks[0][1].strip("\n")
    return text.strip("\n")


def _skip_preamble(lines: List[str]) -> int:
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index < len(lines) and lines[index].strip() == "---":
        index += 1
        while index < len(lines) and lines[index].strip() != "---":
            index += 1
        index += 1
    while index < len(lines):
        stripped = lines[index].strip()
        if stripped and not stripped.startswith("%%"):
            break
        index += 1
    return index


def _is_statement(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("%%")


def _structural_text(line: str, keyword: str) -> str:
    """Drop the free-text parts of a line that may legally contain stray brackets."""
    text = _QUOTED.sub('""', line)
    if keyword in _COLON_LABELLED:
        text = text.split(":", 1)[0]
    if keyword == "erDiagram":
        return _ER_CARDINALITY.sub("--", text)
    text = _EDGE_LABEL.sub("||", text)
    if keyword in ("graph", "flowchart"):
        text = _ASYMMETRIC_NODE.sub(r"\1[\2]", text)
    return text


def _check_brackets(lines: List[str], keyword: str, *, first_line: int = 2) -> Optional[str]:
    """Check bracket nesting; ``first_line`` is the 1-based diagram line of ``lines[0]``."""
    stack: List[Tuple[str, int]] = []
    for number, line in enumerate(lines, start=first_line):
        if line.strip().startswith("%%"):
            continue
        in_quote = False
        for char in _structural_text(line, keyword):
            if char == '"':
                in_quote = not in_quote
                continue
            if in_quote:
                continue
            if char in "([{":
                stack.append((char, number))
            elif char in _PAIRS:
                if not stack or stack[-1][0] != _PAIRS[char]:
                    return f"unbalanced {char!r} on diagram line {number}"
                stack.pop()
    if stack:
        char, number = stack[-1]
        return f"unclosed {char!r} opened on diagram line {number}"
    return None


def _check_blocks(lines: List[str], keyword: str) -> Optional[str]:
    openers = BLOCK_KEYWORDS.get(keyword)
    if not openers:
        return None
    depth = 0
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("%%"):
            continue
        first = stripped.split(None, 1)[0].rstrip(";")
        if first in openers:
            depth += 1
        elif first == "end":
            depth -= 1
            if depth < 0:
                return "'end' without a matching block opener"
    if depth > 0:
        return f"{depth} block(s) missing a closing 'end'"
    return None


def validate_diagram(text: str) -> ValidationVerdict:
    return DiagramValidator().validate(text)


__all__ = [
    "BLOCK_KEYWORDS",
    "DiagramValidator",
    "MERMAID_KEYWORDS",
    "diagram_keyword",
    "extract_mermaid_blocks",
    "validate_diagram",
]
