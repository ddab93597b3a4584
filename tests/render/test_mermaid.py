from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Sequence

import pytest

from autodoc.models import ArtifactSpec, GenerationResult, Skipped, Success, WriteOutcome, Written
from autodoc.output.committer import OutputCommitter
from autodoc.render.mermaid import MermaidRenderer, RenderError, render_diagrams


def _output_arg(args: Sequence[str]) -> Path:
    return Path(args[list(args).index("-o") + 1])


class _FakeMmdc:
    """Writes a fake image for every call unless the source contains ``fail_on``."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: List[List[str]] = []

    def __call__(self, args: Sequence[str], timeout: float) -> None:
        self.calls.append(list(args))
        source = Path(args[list(args).index("-i") + 1]).read_text(encoding="utf-8")
        if self.fail_on and self.fail_on in source:
            raise subprocess.CalledProcessError(1, list(args), stderr="Parse error\nError: bad syntax on line 2\n")
        _output_arg(args).write_bytes(b"PNG:" + source.encode("utf-8"))


def test_render_returns_image_bytes_and_passes_extra_args() -> None:
    runner = _FakeMmdc()
    renderer = MermaidRenderer("mmdc-test", extra_args=["-b", "transparent"], runner=runner)

    data = renderer.render("flowchart TD\n  A --> B\n")

    assert data == b"PNG:flowchart TD\n  A --> B\n"
    args = runner.calls[0]
    assert args[0] == "mmdc-test"
    assert args[-2:] == ["-b", "transparent"]
    assert _output_arg(args).suffix == ".png"


@pytest.mark.parametrize(
    ("error", "message"),
    [
        (FileNotFoundError("mmdc"), "not found; install @mermaid-js/mermaid-cli"),
        (subprocess.TimeoutExpired(["mmdc"], 5), "timed out"),
        (subprocess.CalledProcessError(1, ["mmdc"], stderr="Parse error\nError: bad arrow\n"), "failed: Error: bad arrow"),
        (subprocess.CalledProcessError(3, ["mmdc"]), "failed: exit status 3"),
    ],
)
def test_render_maps_tool_failures(error: BaseException, message: str) -> None:
    def runner(args: Sequence[str], timeout: float) -> None:
        raise error

    with pytest.raises(RenderError, match=message):
        MermaidRenderer(runner=runner).render("flowchart TD\n")


def test_render_reports_missing_output() -> None:
    renderer = MermaidRenderer(runner=lambda args, timeout: None)

    with pytest.raises(RenderError, match="produced no output"):
        renderer.render("flowchart TD\n")


def test_render_diagrams_records_failures_and_keeps_order(tmp_path: Path) -> None:
    committer = OutputCommitter(tmp_path / "docs")
    specs = [ArtifactSpec.diagram("class"), ArtifactSpec.diagram("state"), ArtifactSpec.diagram("flowchart")]
    sources = {
        specs[0]: "classDiagram\n  class A\n",
        specs[1]: "stateDiagram-v2\n  [*] --> BROKEN\n",
        specs[2]: "flowchart TD\n  A --> B\n",
    }
    results = [GenerationResult(ArtifactSpec.document("readme"), Success("# Readme\n"), attempts=1)]
    results += [GenerationResult(spec, Success(sources[spec]), attempts=1) for spec in specs]
    writes = committer.commit(results)

    outcomes = render_diagrams(writes, results, MermaidRenderer(runner=_FakeMmdc(fail_on="BROKEN")), committer, max_workers=3)

    assert [outcome.spec for outcome in outcomes] == specs
    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert outcomes[1].error == "mmdc failed: Error: bad syntax on line 2"
    assert outcomes[1].image is None
    diagrams_dir = tmp_path / "docs" / "diagrams"
    assert outcomes[0].image == diagrams_dir / "class.png"
    assert (diagrams_dir / "class.png").read_bytes() == b"PNG:classDiagram\n  class A\n"
    assert not (diagrams_dir / "state.png").exists()
    assert (diagrams_dir / "flowchart.png").exists()


def test_render_diagrams_ignores_unwritten_diagrams(tmp_path: Path) -> None:
    committer = OutputCommitter(tmp_path / "docs")
    spec = ArtifactSpec.diagram("class")
    results = [GenerationResult(spec, Success("classDiagram\n  class A\n"), attempts=1)]
    skipped = [WriteOutcome(spec, committer.target_path(spec), outcome=Skipped())]
    runner = _FakeMmdc()

    assert render_diagrams(skipped, results, MermaidRenderer(runner=runner), committer) == []
    assert runner.calls == []


def test_written_outcome_is_renderable(tmp_path: Path) -> None:
    committer = OutputCommitter(tmp_path / "docs")
    spec = ArtifactSpec.diagram("sequence")
    source = "sequenceDiagram\n  A->>B: hi\n"
    committer.prepare()
    (tmp_path / "docs" / "diagrams" / "sequence.mmd").write_text(source, encoding="utf-8")
    writes = [WriteOutcome(spec, committer.target_path(spec), Written())]

    outcomes = render_diagrams(writes, [GenerationResult(spec, Success(source))], MermaidRenderer(runner=_FakeMmdc()), committer)

    assert outcomes[0].ok
    assert outcomes[0].source == tmp_path / "docs" / "diagrams" / "sequence.mmd"
