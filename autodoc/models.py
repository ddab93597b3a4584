"""Core data models shared across autodoc components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class FileDescriptor:
    """Metadata for an individual project file."""

    path: str
    language: Optional[str]
    size: int
    excerpt: Optional[str] = None


@dataclass(frozen=True)
class ProjectStructure:
    """Read-only view of a scanned project handed to the generation pipeline."""

    project_type: str
    root: str
    files: Tuple[FileDescriptor, ...] = ()
    dependencies: Mapping[str, str] = field(default_factory=dict)
    entry_points: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Freeze container fields so one run can never observe a mutation.
        object.__setattr__(self, "files", tuple(self.files))
        object.__setattr__(self, "entry_points", tuple(self.entry_points))
        object.__setattr__(self, "dependencies", MappingProxyType(dict(self.dependencies)))

    @property
    def name(self) -> str:
        return Path(self.root).name or "project"

    def languages(self) -> List[str]:
        """Return languages ordered by number of files, most common first."""
        counts: Dict[str, int] = {}
        for descriptor in self.files:
            if descriptor.language:
                counts[descriptor.language] = counts.get(descriptor.language, 0) + 1
        return [name for name, _ in sorted(counts.items(), key=lambda item: (-item[1], item[0]))]


class ArtifactKind(str, Enum):
    DOCUMENTATION = "documentation"
    DIAGRAM = "diagram"


class DocumentType(str, Enum):
    """The fixed set of documentation artifacts."""

    README = "readme"
    ARCHITECTURE = "architecture"
    API = "api"
    SETUP = "setup"
    USAGE = "usage"
    CONTRIBUTING = "contributing"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    SECURITY = "security"
    TROUBLESHOOTING = "troubleshooting"


class DiagramType(str, Enum):
    """The fixed set of Mermaid diagram artifacts."""

    ARCHITECTURE = "architecture"
    COMPONENT = "component"
    CLASS = "class"
    SEQUENCE = "sequence"
    FLOWCHART = "flowchart"
    ENTITY_RELATIONSHIP = "entity_relationship"
    STATE = "state"
    DEPENDENCY = "dependency"
    DATA_FLOW = "data_flow"
    DEPLOYMENT = "deployment"
    USER_JOURNEY = "user_journey"
    PACKAGE = "package"
    MODULE_INTERACTION = "module_interaction"
    TIMELINE = "timeline"


Subtype = Union[DocumentType, DiagramType]

_KIND_PREFIXES = {
    "doc": ArtifactKind.DOCUMENTATION,
    "docs": ArtifactKind.DOCUMENTATION,
    "documentation": ArtifactKind.DOCUMENTATION,
    "diagram": ArtifactKind.DIAGRAM,
    "diagrams": ArtifactKind.DIAGRAM,
}


@dataclass(frozen=True)
class ArtifactSpec:
    """A single requested artifact: a kind plus one subtype of that kind."""

    kind: ArtifactKind
    subtype: Subtype

    def __post_init__(self) -> None:
        expected = DocumentType if self.kind is ArtifactKind.DOCUMENTATION else DiagramType
        if not isinstance(self.subtype, expected):
            raise ValueError(
                f"Subtype {self.subtype!r} is not a valid {self.kind.value} subtype"
            )

    @classmethod
    def document(cls, subtype: DocumentType | str) -> "ArtifactSpec":
        return cls(ArtifactKind.DOCUMENTATION, DocumentType(_normalise_name(subtype)))

    @classmethod
    def diagram(cls, subtype: DiagramType | str) -> "ArtifactSpec":
        return cls(ArtifactKind.DIAGRAM, DiagramType(_normalise_name(subtype)))

    @classmethod
    def parse(cls, value: str) -> "ArtifactSpec":
        """Parse ``doc:readme`` / ``diagram:class`` style identifiers."""
        prefix, sep, name = value.partition(":")
        if not sep:
            raise ValueError(f"Artifact identifier must look like 'doc:<name>' or 'diagram:<name>': {value!r}")
        kind = _KIND_PREFIXES.get(prefix.strip().lower())
        if kind is None:
            raise ValueError(f"Unknown artifact kind {prefix!r} in {value!r}")
        if kind is ArtifactKind.DOCUMENTATION:
            return cls.document(name)
        return cls.diagram(name)

    @property
    def is_diagram(self) -> bool:
        return self.kind is ArtifactKind.DIAGRAM

    @property
    def key(self) -> str:
        prefix = "diagram" if self.is_diagram else "doc"
        return f"{prefix}:{self.subtype.value}"

    def __str__(self) -> str:
        return self.key


def all_documents() -> List[ArtifactSpec]:
    return [ArtifactSpec(ArtifactKind.DOCUMENTATION, item) for item in DocumentType]


def all_diagrams() -> List[ArtifactSpec]:
    return [ArtifactSpec(ArtifactKind.DIAGRAM, item) for item in DiagramType]


def _normalise_name(value: Enum | str) -> str:
    if isinstance(value, Enum):
        return value.value
    return value.strip().lower().replace("-", "_").replace(" ", "_")


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    max_output_tokens: int


@dataclass(frozen=True)
class GenerationRequest:
    """Prompt and parameters for one artifact; never reused across artifacts."""

    spec: ArtifactSpec
    system: str
    prompt: str
    params: GenerationParams
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Success:
    content: str


@dataclass(frozen=True)
class Failed:
    reason: str
    category: str


Outcome = Union[Success, Failed]


@dataclass(frozen=True)
class GenerationResult:
    """The single recorded outcome for one requested artifact."""

    spec: ArtifactSpec
    outcome: Outcome
    attempts: int = 0
    duration: float = 0.0

    @property
    def accepted(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def content(self) -> Optional[str]:
        return self.outcome.content if isinstance(self.outcome, Success) else None

    @property
    def reason(self) -> Optional[str]:
        return self.outcome.reason if isinstance(self.outcome, Failed) else None

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)


@dataclass(frozen=True)
class Written:
    pass


@dataclass(frozen=True)
class Skipped:
    reason: str = "exists"


@dataclass(frozen=True)
class WriteFailed:
    reason: str


WriteStatus = Union[Written, Skipped, WriteFailed]


@dataclass(frozen=True)
class WriteOutcome:
    spec: ArtifactSpec
    path: Path
    outcome: WriteStatus

    @property
    def written(self) -> bool:
        return isinstance(self.outcome, Written)

    @property
    def status(self) -> str:
        if isinstance(self.outcome, Written):
            return "written"
        if isinstance(self.outcome, Skipped):
            return "skipped"
        return "failed"


def dedupe_specs(specs: Iterable[ArtifactSpec]) -> List[ArtifactSpec]:
    """Drop repeated specs, keeping the first occurrence of each."""
    seen: set[ArtifactSpec] = set()
    ordered: List[ArtifactSpec] = []
    for spec in specs:
        if spec in seen:
            continue
        seen.add(spec)
        ordered.append(spec)
    return ordered


__all__ = [
    "ArtifactKind",
    "ArtifactSpec",
    "DiagramType",
    "DocumentType",
    "Failed",
    "FileDescriptor",
    "GenerationParams",
    "GenerationRequest",
    "GenerationResult",
    "Outcome",
    "ProjectStructure",
    "Skipped",
    "Success",
    "WriteFailed",
    "WriteOutcome",
    "WriteStatus",
    "Written",
    "all_diagrams",
    "all_documents",
    "dedupe_specs",
]
