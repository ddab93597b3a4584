"""Fixed per-artifact prompting profiles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from ..models import ArtifactKind, ArtifactSpec, DiagramType, DocumentType

FACET_DEPENDENCIES = "dependencies"
FACET_ENTRY_POINTS = "entry_points"
FACET_FILES = "files"
FACET_EXCERPTS = "excerpts"

ALL_FACETS: Tuple[str, ...] = (FACET_DEPENDENCIES, FACET_ENTRY_POINTS, FACET_FILES, FACET_EXCERPTS)


@dataclass(frozen=True)
class ArtifactProfile:
    """What one artifact subtype must look like and which project facts feed it."""

    title: str
    filename: str
    facets: Tuple[str, ...]
    sections: Tuple[str, ...] = ()
    keyword: str = ""
    guidance: str = ""


DOCUMENT_PROFILES: Dict[DocumentType, ArtifactProfile] = {
    DocumentType.README: ArtifactProfile(
        title="README",
        filename="README.md",
        facets=ALL_FACETS,
        sections=("Overview", "Features", "Installation", "Usage", "Project Structure", "License"),
        guidance="Open with the project name as a level-one heading and a one-paragraph summary.",
    ),
    DocumentType.ARCHITECTURE: ArtifactProfile(
        title="Architecture",
        filename="ARCHITECTURE.md",
        facets=(FACET_ENTRY_POINTS, FACET_FILES, FACET_EXCERPTS, FACET_DEPENDENCIES),
        sections=("System Overview", "Components", "Data Flow", "Key Design Decisions"),
        guidance="Describe module boundaries and how control moves from the entry points inward.",
    ),
    DocumentType.API: ArtifactProfile(
        title="API Reference",
        filename="API.md",
        facets=(FACET_FILES, FACET_EXCERPTS, FACET_ENTRY_POINTS),
        sections=("Overview", "Public Interfaces", "Request and Response Formats", "Errors"),
        guidance="Document only interfaces visible in the excerpts; name each one with its signature.",
    ),
    DocumentType.SETUP: ArtifactProfile(
        title="Setup Guide",
        filename="SETUP.md",
        facets=(FACET_DEPENDENCIES, FACET_ENTRY_POINTS, FACET_FILES),
        sections=("Prerequisites", "Installation", "Configuration", "Verifying the Installation"),
        guidance="Derive install commands from the dependency manifests listed in the project facts.",
    ),
    DocumentType.USAGE: ArtifactProfile(
        title="Usage Guide",
        filename="USAGE.md",
        facets=(FACET_ENTRY_POINTS, FACET_EXCERPTS, FACET_FILES),
        sections=("Getting Started", "Common Tasks", "Examples", "Options"),
        guidance="Show runnable examples in fenced code blocks.",
    ),
    DocumentType.CONTRIBUTING: ArtifactProfile(
        title="Contributing Guide",
        filename="CONTRIBUTING.md",
        facets=(FACET_FILES, FACET_DEPENDENCIES),
        sections=("Development Environment", "Coding Standards", "Testing", "Submitting Changes"),
    ),
    DocumentType.TESTING: ArtifactProfile(
        title="Testing Guide",
        filename="TESTING.md",
        facets=(FACET_FILES, FACET_DEPENDENCIES, FACET_EXCERPTS),
        sections=("Test Layout", "Running Tests", "Writing Tests", "Continuous Integration"),
        guidance="Base the test commands on the test files and tooling present in the project.",
    ),
    DocumentType.DEPLOYMENT: ArtifactProfile(
        title="Deployment Guide",
        filename="DEPLOYMENT.md",
        facets=(FACET_FILES, FACET_DEPENDENCIES, FACET_ENTRY_POINTS),
        sections=("Build", "Environments", "Configuration", "Release Process", "Rollback"),
    ),
    DocumentType.SECURITY: ArtifactProfile(
        title="Security Policy",
        filename="SECURITY.md",
        facets=(FACET_DEPENDENCIES, FACET_FILES),
        sections=("Supported Versions", "Reporting a Vulnerability", "Security Practices"),
    ),
    DocumentType.TROUBLESHOOTING: ArtifactProfile(
        title="Troubleshooting",
        filename="TROUBLESHOOTING.md",
        facets=(FACET_DEPENDENCIES, FACET_ENTRY_POINTS, FACET_FILES),
        sections=("Common Problems", "Diagnostics", "Getting Help"),
    ),
}


DIAGRAM_PROFILES: Dict[DiagramType, ArtifactProfile] = {
    DiagramType.ARCHITECTURE: ArtifactProfile(
        title="Architecture Diagram",
        filename="architecture.mmd",
        facets=(FACET_ENTRY_POINTS, FACET_FILES, FACET_DEPENDENCIES),
        keyword="flowchart TB",
        guidance="Group modules into subgraphs by layer and connect them in call order.",
    ),
    DiagramType.COMPONENT: ArtifactProfile(
        title="Component Diagram",
        filename="component.mmd",
        facets=(FACET_FILES, FACET_ENTRY_POINTS),
        keyword="flowchart LR",
        guidance="One node per component; label edges with the interaction.",
    ),
    DiagramType.CLASS: ArtifactProfile(
        title="Class Diagram",
        filename="class.mmd",
        facets=(FACET_FILES, FACET_EXCERPTS),
        keyword="classDiagram",
        guidance="Include only classes visible in the excerpts, with their main attributes and methods.",
    ),
    DiagramType.SEQUENCE: ArtifactProfile(
        title="Sequence Diagram",
        filename="sequence.mmd",
        facets=(FACET_ENTRY_POINTS, FACET_EXCERPTS),
        keyword="sequenceDiagram",
        guidance="Trace the main request or command from the entry point to its result.",
    ),
    DiagramType.FLOWCHART: ArtifactProfile(
        title="Flowchart",
        filename="flowchart.mmd",
        facets=(FACET_ENTRY_POINTS, FACET_EXCERPTS),
        keyword="flowchart TD",
        guidance="Show the primary control flow with decision nodes for branches.",
    ),
    DiagramType.ENTITY_RELATIONSHIP: ArtifactProfile(
        title="Entity Relationship Diagram",
        filename="entity_relationship.mmd",
        facets=(FACET_FILES, FACET_EXCERPTS),
        keyword="erDiagram",
        guidance="Model persisted entities and their cardinalities.",
    ),
    DiagramType.STATE: ArtifactProfile(
        title="State Diagram",
        filename="state.mmd",
        facets=(FACET_EXCERPTS, FACET_ENTRY_POINTS),
        keyword="stateDiagram-v2",
        guidance="Capture the lifecycle of the central object or process.",
    ),
    DiagramType.DEPENDENCY: ArtifactProfile(
        title="Dependency Graph",
        filename="dependency.mmd",
        facets=(FACET_DEPENDENCIES, FACET_FILES),
        keyword="graph LR",
        guidance="Connect the project node to each external dependency.",
    ),
    DiagramType.DATA_FLOW: ArtifactProfile(
        title="Data Flow Diagram",
        filename="data_flow.mmd",
        facets=(FACET_ENTRY_POINTS, FACET_FILES, FACET_EXCERPTS),
        keyword="flowchart LR",
        guidance="Follow data from inputs through transformations to stores and outputs.",
    ),
    DiagramType.DEPLOYMENT: ArtifactProfile(
        title="Deployment Diagram",
        filename="deployment.mmd",
        facets=(FACET_FILES, FACET_DEPENDENCIES),
        keyword="flowchart TB",
        guidance="Show runtime nodes (processes, containers, services) and how they connect.",
    ),
    DiagramType.USER_JOURNEY: ArtifactProfile(
        title="User Journey",
        filename="user_journey.mmd",
        facets=(FACET_ENTRY_POINTS, FACET_FILES),
        keyword="journey",
        guidance="Describe the steps a user takes with scores from 1 to 5.",
    ),
    DiagramType.PACKAGE: ArtifactProfile(
        title="Package Diagram",
        filename="package.mmd",
        facets=(FACET_FILES,),
        keyword="flowchart TB",
        guidance="One subgraph per top-level directory; nodes are the packages inside it.",
    ),
    DiagramType.MODULE_INTERACTION: ArtifactProfile(
        title="Module Interaction Diagram",
        filename="module_interaction.mmd",
        facets=(FACET_FILES, FACET_EXCERPTS, FACET_ENTRY_POINTS),
        keyword="sequenceDiagram",
        guidance="Show which modules call which, using participants for modules.",
    ),
    DiagramType.TIMELINE: ArtifactProfile(
        title="Project Timeline",
        filename="timeline.mmd",
        facets=(FACET_FILES, FACET_DEPENDENCIES),
        keyword="timeline",
        guidance="Lay out the build, test and release stages in the order they happen.",
    ),
}


def profile_for(spec: ArtifactSpec) -> ArtifactProfile:
    if spec.kind is ArtifactKind.DOCUMENTATION:
        return DOCUMENT_PROFILES[spec.subtype]  # type: ignore[index]
    return DIAGRAM_PROFILES[spec.subtype]  # type: ignore[index]


__all__ = [
    "ALL_FACETS",
    "ArtifactProfile",
    "DIAGRAM_PROFILES",
    "DOCUMENT_PROFILES",
    "FACET_DEPENDENCIES",
    "FACET_ENTRY_POINTS",
    "FACET_EXCERPTS",
    "FACET_FILES",
    "profile_for",
]
