"""Tests for request building and prompt budgeting."""

from __future__ import annotations

from pathlib import Path

from autodoc.models import ArtifactSpec, FileDescriptor, ProjectStructure
from autodoc.prompting.builder import MAX_LISTED_DEPENDENCIES, MAX_LISTED_ENTRY_POINTS, RequestBuilder, truncate_excerpt


def test_readme_request_embeds_required_structure(structure: ProjectStructure) -> None:
    request = RequestBuilder().build(ArtifactSpec.document("readme"), structure)

    assert request.spec == ArtifactSpec.document("readme")
    assert request.system == RequestBuilder.SYSTEM_PROMPT
    assert "Artifact: README (doc:readme)" in request.prompt
    assert "# demo\n" in request.prompt
    for section in ("Overview", "Features", "Installation", "Usage", "Project Structure", "License"):
        assert f"## {section}\n" in request.prompt
    assert "- requests >=2.31" in request.prompt
    assert "- demo = demo.cli:main" in request.prompt
    assert "- Languages: Python, TOML" in request.prompt
    assert request.params.temperature == 0.2
    assert request.params.max_output_tokens == 8192
    assert request.metadata["prompt_chars"] == len(request.prompt)


def test_non_readme_heading_includes_document_title(structure: ProjectStructure) -> None:
    request = RequestBuilder().build(ArtifactSpec.document("setup"), structure)

    assert "# demo Setup Guide\n" in request.prompt
    assert "## Prerequisites\n" in request.prompt


def test_diagram_request_names_keyword_and_uses_diagram_token_limit(structure: ProjectStructure) -> None:
    builder = RequestBuilder(diagram_max_output_tokens=1024)
    request = builder.build(ArtifactSpec.diagram("architecture"), structure)

    assert "Artifact: Architecture Diagram (diagram:architecture)" in request.prompt
    assert "The first line must be `flowchart TB`." in request.prompt
    assert request.params.max_output_tokens == 1024


def test_facets_limit_selected_project_data(structure: ProjectStructure) -> None:
    request = RequestBuilder().build(ArtifactSpec.document("contributing"), structure)

    assert "Dependencies:" in request.prompt
    assert "Entry points:" not in request.prompt
    assert "- demo/cli.py (Python, 400 bytes)" in request.prompt
    assert "print('demo')" not in request.prompt


def test_excerpts_are_fenced_with_language(structure: ProjectStructure) -> None:
    request = RequestBuilder().build(ArtifactSpec.document("api"), structure)

    assert "```python\ndef main() -> None:\n    print('demo')\n```" in request.prompt


def test_zero_excerpt_limit_lists_paths_only(structure: ProjectStructure) -> None:
    request = RequestBuilder(max_excerpt_chars=0).build(ArtifactSpec.document("api"), structure)

    assert "- demo/cli.py (Python, 400 bytes)" in request.prompt
    assert "print('demo')" not in request.prompt
    assert request.metadata["excerpts_dropped"] == 0


def test_excerpt_containing_fence_uses_longer_fence() -> None:
    structure = ProjectStructure(
        project_type="python",
        root="/work/demo",
        files=(FileDescriptor("README.py", "Python", 40, 'DOC = """\n```bash\nrun\n```\n"""'),),
    )
    request = RequestBuilder().build(ArtifactSpec.document("api"), structure)

    assert "````python\n" in request.prompt


def test_truncate_excerpt_is_deterministic_and_bounded() -> None:
    text = "\n".join(f"line {index:03d} " + "x" * 40 for index in range(200))

    first = truncate_excerpt(text, 500)
    second = truncate_excerpt(text, 500)

    assert first == second
    excerpt, removed = first
    body, marker = excerpt.rsplit("\n", 1)
    assert len(body) <= 500
    assert marker == f"… [truncated {removed} chars]"
    assert body.endswith("x")
    assert len(body) + removed == len(text)


def test_truncate_excerpt_leaves_short_text_alone() -> None:
    assert truncate_excerpt("short\n\n", 100) == ("short", 0)


def test_large_projects_stay_within_budget_in_structure_order() -> None:
    files = tuple(
        FileDescriptor(f"pkg/module_{index:02d}.py", "Python", 5000, f"# module {index}\n" + "y = 1\n" * 400)
        for index in range(40)
    )
    structure = ProjectStructure(project_type="python", root="/work/big", files=files)
    builder = RequestBuilder(max_prompt_chars=4000, max_excerpt_chars=600)

    request = builder.build(ArtifactSpec.document("api"), structure)
    metadata = request.metadata

    assert metadata["excerpts_truncated"] >= 1
    assert metadata["files_omitted"] > 0
    assert metadata["files_included"] + metadata["files_omitted"] == len(files)
    assert metadata["prompt_chars"] <= 4000
    assert f"- ... and {metadata['files_omitted']} more files" in request.prompt

    listed = [line[2:].split(" (")[0] for line in request.prompt.splitlines() if line.startswith("- pkg/")]
    assert listed == [descriptor.path for descriptor in files[: len(listed)]]


def test_excerpts_stop_once_one_does_not_fit() -> None:
    files = (
        FileDescriptor("a.py", "Python", 10, "a = 1\n"),
        FileDescriptor("b.py", "Python", 10, "b = 2\n" * 300),
        FileDescriptor("c.py", "Python", 10, "c = 3\n"),
    )
    structure = ProjectStructure(project_type="python", root="/work/small", files=files)
    builder = RequestBuilder(max_prompt_chars=1400, max_excerpt_chars=5000)

    request = builder.build(ArtifactSpec.document("api"), structure)

    assert "a = 1" in request.prompt
    assert "b = 2" not in request.prompt
    assert "c = 3" not in request.prompt
    assert "- c.py (Python, 10 bytes)" in request.prompt
    assert request.metadata["excerpts_dropped"] == 2


def test_custom_templates_directory_overrides_defaults(tmp_path: Path, structure: ProjectStructure) -> None:
    (tmp_path / "document.md.j2").write_text("Custom {{ spec.key }} for {{ project.name }}", encoding="utf-8")
    builder = RequestBuilder(templates_dir=tmp_path)

    assert builder.build(ArtifactSpec.document("readme"), structure).prompt == "Custom doc:readme for demo\n"
    assert "Mermaid" in builder.build(ArtifactSpec.diagram("class"), structure).prompt


def test_many_entry_points_are_capped_within_prompt_budget() -> None:
    structure = ProjectStructure(
        project_type="python",
        root="/work/scripts",
        files=(FileDescriptor("scripts/run.py", "Python", 12, "run()\n"),),
        entry_points=tuple(f"tool-{index:03d} = scripts.tools.tool_{index:03d}:main" for index in range(400)),
    )
    builder = RequestBuilder(max_prompt_chars=2000)

    request = builder.build(ArtifactSpec.diagram("architecture"), structure)
    omitted = request.metadata["entry_points_omitted"]

    assert len(request.prompt) <= 2000
    assert request.metadata["prompt_chars"] == len(request.prompt)
    assert omitted > 0
    assert f"- ... and {omitted} more\n" in request.prompt
    assert "- tool-000 = scripts.tools.tool_000:main" in request.prompt
    assert "(none detected)" not in request.prompt


def test_entry_points_are_capped_even_with_room_to_spare() -> None:
    structure = ProjectStructure(
        project_type="node",
        root="/work/cli",
        entry_points=tuple(f"bin/cmd-{index}" for index in range(MAX_LISTED_ENTRY_POINTS + 5)),
    )

    request = RequestBuilder().build(ArtifactSpec.document("usage"), structure)

    assert request.metadata["entry_points_omitted"] == 5
    assert "- bin/cmd-0\n" in request.prompt
    assert f"- bin/cmd-{MAX_LISTED_ENTRY_POINTS}\n" not in request.prompt


def test_large_dependency_list_respects_prompt_budget() -> None:
    structure = ProjectStructure(
        project_type="node",
        root="/work/web",
        dependencies={f"package-with-a-long-name-{index:03d}": "^1.2.3" for index in range(300)},
    )

    request = RequestBuilder(max_prompt_chars=1500).build(ArtifactSpec.document("contributing"), structure)

    assert len(request.prompt) <= 1500
    assert request.metadata["dependencies_omitted"] > 300 - MAX_LISTED_DEPENDENCIES
