"""Validation of backend responses before they are accepted as artifacts."""

from __future__ import annotations

from typing import Dict

from ..models import ArtifactKind
from .base import ValidationVerdict, Validator, normalise_newlines, strip_wrapping_fence
from .markdown import DocumentValidator, looks_like_prompt_echo, validate_document
from .mermaid import DiagramValidator, extract_mermaid_blocks, validate_diagram


class ContentValidator:
    """Dispatches a response to the validator for its artifact kind."""

    def __init__(self, validators: Dict[ArtifactKind, Validator] | None = None) -> None:
        self._validators: Dict[ArtifactKind, Validator] = {
            ArtifactKind.DOCUMENTATION: DocumentValidator(),
            ArtifactKind.DIAGRAM: DiagramValidator(),
        }
        if validators:
            self._validators.update(validators)

    def validate(self, kind: ArtifactKind, text: str) -> ValidationVerdict:
        return self._validators[kind].validate(text)


__all__ = [
    "ContentValidator",
    "DiagramValidator",
    "DocumentValidator",
    "ValidationVerdict",
    "Validator",
    "extract_mermaid_blocks",
    "looks_like_prompt_echo",
    "normalise_newlines",
    "strip_wrapping_fence",
    "validate_diagram",
    "validate_document",
]
