"""Builds bounded generation requests from a project structure."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from jinja2 import Environment, FileSystemLoader

from ..logging import get_logger
from ..models import (
    ArtifactKind,
    ArtifactSpec,
    DocumentType,
    FileDescriptor,
    GenerationParams,
    GenerationRequest,
    ProjectStructure,
)
from .constants import (
    FACET_DEPENDENCIES,
    FACET_ENTRY_POINTS,
    FACET_EXCERPTS,
    FACET_FILES,
    ArtifactProfile,
    profile_for,
)

DEFAULT_MAX_PROMPT_CHARS = 24_000
DEFAULT_MAX_EXCERPT_CHARS = 2_000
DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_OUTPUT_TOKENS = 8_192
DEFAULT_DIAGRAM_MAX_OUTPUT_TOKENS = 2_048
MAX_LISTED_DEPENDENCIES = 60
MAX_LISTED_ENTRY_POINTS = 40
_OVERFLOW_LINE_CHARS = 40

_Item = TypeVar("_Item")

_TEMPLATES = {
    ArtifactKind.DOCUMENTATION: "document.md.j2",
    ArtifactKind.DIAGRAM: "diagram.md.j2",
}

_FENCE_LANGUAGES = {
    "C#": "csharp",
    "C++": "cpp",
    "Objective-C": "objectivec",
    "Objective-C++": "objectivec",
    "Shell": "bash",
}


@dataclass(frozen=True)
class FileEntry:
    """A file as it appears in the prompt, excerpt already truncated."""

    path: str
    language: Optional[str]
    size: int
    excerpt: Optional[str]
    fence: str
    fence_language: str


def truncate_excerpt(text: str, limit: int) -> Tuple[str, int]:
    """Cut ``text`` to at most ``limit`` characters plus a marker.

    The cut prefers the last line break in the second half of the window so
    excerpts end on whole lines. Returns the excerpt and the number of
    characters removed. The same input always yields the same cut.
    """
    body = text.rstrip()
    if limit <= 0 or len(body) <= limit:
        return body, 0
    cut = body.rfind("\n", limit // 2, limit)
    if cut == -1:
        cut = limit
    kept = body[:cut].rstrip()
    removed = len(body) - len(kept)
    return f"{kept}\n… [truncated {removed} chars]", removed


class RequestBuilder:
    """Turns an artifact spec plus project structure into a bounded prompt."""

    SYSTEM_PROMPT = (
        "You are a senior technical writer documenting a software project. Stay grounded in the "
        "project facts you are given, follow the requested structure exactly, and never invent "
        "files, commands, or dependencies."
    )

    def __init__(
        self,
        *,
        max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS,
        max_excerpt_chars: int = DEFAULT_MAX_EXCERPT_CHARS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        diagram_max_output_tokens: int = DEFAULT_DIAGRAM_MAX_OUTPUT_TOKENS,
        templates_dir: Path | None = None,
    ) -> None:
        self.max_prompt_chars = max_prompt_chars
        self.max_excerpt_chars = max_excerpt_chars
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.diagram_max_output_tokens = diagram_max_output_tokens
        self.templates_dir = templates_dir
        self._env = self._create_env(templates_dir)
        self.logger = get_logger("prompting")

    def build(self, spec: ArtifactSpec, structure: ProjectStructure) -> GenerationRequest:
        profile = profile_for(spec)
        template = self._env.get_template(_TEMPLATES[spec.kind])
        fixed = {
            "spec": spec,
            "profile": profile,
            "project": structure,
            "heading": self._heading(spec, profile, structure),
        }
        # The scaffold with every facet empty is what the facets have to fit around.
        scaffold = template.render(**fixed, **self._empty_context(profile, structure)).strip() + "\n"
        context, metadata = self._select_context(profile, structure, budget=self.max_prompt_chars - len(scaffold))
        prompt = template.render(**fixed, **context).strip() + "\n"

        metadata["prompt_chars"] = len(prompt)
        if len(prompt) > self.max_prompt_chars:
            self.logger.warning(
                "%s prompt is %d chars, over the %d char limit; the template itself is too large",
                spec.key,
                len(prompt),
                self.max_prompt_chars,
            )
        self.logger.debug(
            "Built %s prompt: %d chars, %d excerpts truncated, %d files omitted, %d entry points omitted",
            spec.key,
            len(prompt),
            metadata["excerpts_truncated"],
            metadata["files_omitted"],
            metadata["entry_points_omitted"],
        )
        return GenerationRequest(
            spec=spec,
            system=self.SYSTEM_PROMPT,
            prompt=prompt,
            params=self._params_for(spec),
            metadata=metadata,
        )

    def _params_for(self, spec: ArtifactSpec) -> GenerationParams:
        if spec.is_diagram:
            return GenerationParams(self.temperature, self.diagram_max_output_tokens)
        return GenerationParams(self.temperature, self.max_output_tokens)

    @staticmethod
    def _heading(spec: ArtifactSpec, profile: ArtifactProfile, structure: ProjectStructure) -> str:
        if spec.subtype is DocumentType.README:
            return structure.name
        return f"{structure.name} {profile.title}"

    @staticmethod
    def _empty_context(profile: ArtifactProfile, structure: ProjectStructure) -> Dict[str, object]:
        facets = set(profile.facets)
        return {
            "languages": structure.languages()[:5],
            "file_count": len(structure.files),
            "entry_points": [] if FACET_ENTRY_POINTS in facets else None,
            "entry_points_omitted": 0,
            "dependencies": [] if FACET_DEPENDENCIES in facets else None,
            "dependencies_omitted": 0,
            "files": [] if FACET_FILES in facets or FACET_EXCERPTS in facets else None,
            "files_omitted": 0,
        }

    def _select_context(
        self,
        profile: ArtifactProfile,
        structure: ProjectStructure,
        *,
        budget: int,
    ) -> Tuple[Dict[str, object], Dict[str, object]]:
        """Fill ``budget`` characters with entry points, then dependencies, then files."""
        facets = set(profile.facets)
        context = self._empty_context(profile, structure)
        # Room for the "... and N more" line of every listed facet.
        remaining = budget - _OVERFLOW_LINE_CHARS * sum(
            1 for key in ("entry_points", "dependencies", "files") if context[key] is not None
        )

        entry_points_omitted = 0
        if FACET_ENTRY_POINTS in facets:
            entry_points, entry_points_omitted, remaining = _fill_lines(
                list(structure.entry_points),
                cost=lambda entry: len(entry) + 3,
                limit=MAX_LISTED_ENTRY_POINTS,
                budget=remaining,
            )
            context["entry_points"] = entry_points
            context["entry_points_omitted"] = entry_points_omitted

        dependencies_omitted = 0
        if FACET_DEPENDENCIES in facets:
            dependencies, dependencies_omitted, remaining = _fill_lines(
                list(structure.dependencies.items()),
                cost=lambda item: len(item[0]) + len(item[1]) + 4,
                limit=MAX_LISTED_DEPENDENCIES,
                budget=remaining,
            )
            context["dependencies"] = dependencies
            context["dependencies_omitted"] = dependencies_omitted

        files: Optional[List[FileEntry]] = None
        files_omitted = 0
        excerpts_truncated = 0
        excerpts_dropped = 0
        if FACET_FILES in facets or FACET_EXCERPTS in facets:
            files, files_omitted, excerpts_truncated, excerpts_dropped = self._select_files(
                structure.files,
                with_excerpts=FACET_EXCERPTS in facets,
                budget=remaining,
            )
            context["files"] = files
            context["files_omitted"] = files_omitted

        metadata: Dict[str, object] = {
            "facets": list(profile.facets),
            "files_included": len(files) if files is not None else 0,
            "files_omitted": files_omitted,
            "excerpts_truncated": excerpts_truncated,
            "excerpts_dropped": excerpts_dropped,
            "entry_points_omitted": entry_points_omitted,
            "dependencies_omitted": dependencies_omitted,
        }
        return context, metadata

    def _select_files(
        self,
        descriptors: Sequence[FileDescriptor],
        *,
        with_excerpts: bool,
        budget: int,
    ) -> Tuple[List[FileEntry], int, int, int]:
        """Fill the budget in structure order: files with excerpts, then paths only, then a count."""
        selected: List[FileEntry] = []
        remaining = budget
        # A zero excerpt limit turns excerpts off entirely.
        with_excerpts = with_excerpts and self.max_excerpt_chars > 0
        excerpts_open = with_excerpts
        truncated = 0
        dropped = 0

        for index, descriptor in enumerate(descriptors):
            line_cost = len(descriptor.path) + len(descriptor.language or "") + len(str(descriptor.size)) + 14
            fence_language = _fence_language(descriptor.language)
            excerpt: Optional[str] = None
            fence = "```"
            cut = 0
            if excerpts_open and descriptor.excerpt and descriptor.excerpt.strip():
                excerpt, cut = truncate_excerpt(descriptor.excerpt, self.max_excerpt_chars)
                fence = "````" if "```" in excerpt else "```"
                if line_cost + _fenced_cost(excerpt, fence, fence_language) > remaining:
                    # Excerpts stop here so later files never jump ahead of earlier ones.
                    excerpts_open = False
                    excerpt = None
                    cut = 0
            if excerpt is None and with_excerpts and descriptor.excerpt and descriptor.excerpt.strip():
                dropped += 1

            cost = line_cost + (_fenced_cost(excerpt, fence, fence_language) if excerpt else 0)
            if cost > remaining:
                return selected, len(descriptors) - index, truncated, dropped
            remaining -= cost
            if cut:
                truncated += 1
            selected.append(
                FileEntry(
                    path=descriptor.path,
                    language=descriptor.language,
                    size=descriptor.size,
                    excerpt=excerpt,
                    fence=fence,
                    fence_language=fence_language,
                )
            )
        return selected, 0, truncated, dropped

    @staticmethod
    def _create_env(templates_dir: Path | None) -> Environment:
        directories: List[str] = []
        if templates_dir is not None:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        loader = FileSystemLoader(directories)
        return Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )


def _fill_lines(
    items: List[_Item],
    *,
    cost: Callable[[_Item], int],
    limit: int,
    budget: int,
) -> Tuple[List[_Item], int, int]:
    """Keep a prefix of ``items`` that fits ``limit`` and ``budget``; return it, the omitted count and the budget left."""
    kept: List[_Item] = []
    for item in items[:limit]:
        item_cost = cost(item)
        if item_cost > budget:
            break
        budget -= item_cost
        kept.append(item)
    return kept, len(items) - len(kept), budget


def _fenced_cost(excerpt: str, fence: str, fence_language: str) -> int:
    return len(excerpt) + 2 * len(fence) + len(fence_language) + 3


def _fence_language(language: Optional[str]) -> str:
    if not language:
        return ""
    return _FENCE_LANGUAGES.get(language, language.lower())


__all__ = [
    "DEFAULT_DIAGRAM_MAX_OUTPUT_TOKENS",
    "DEFAULT_MAX_EXCERPT_CHARS",
    "DEFAULT_MAX_OUTPUT_TOKENS",
    "DEFAULT_MAX_PROMPT_CHARS",
    "DEFAULT_TEMPERATURE",
    "FileEntry",
    "MAX_LISTED_DEPENDENCIES",
    "MAX_LISTED_ENTRY_POINTS",
    "RequestBuilder",
    "truncate_excerpt",
]
