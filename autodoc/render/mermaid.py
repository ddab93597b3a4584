"""Rasterise committed Mermaid diagrams with the ``mmdc`` command line tool."""

from __future__ import annotations

import concurrent.futures
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..logging import get_logger
from ..models import ArtifactSpec, GenerationResult, WriteOutcome
from ..output.committer import OutputCommitter, write_bytes

DEFAULT_EXECUTABLE = "mmdc"
DEFAULT_TIMEOUT = 120.0

Runner = Callable[[Sequence[str], float], None]


class RenderError(RuntimeError):
    """Raised when a diagram cannot be rasterised."""


@dataclass(frozen=True)
class RenderOutcome:
    spec: ArtifactSpec
    source: Path
    image: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MermaidRenderer:
    """Runs ``mmdc -i in.mmd -o out.png`` in a scratch directory and returns the image bytes."""

    def __init__(
        self,
        executable: str = DEFAULT_EXECUTABLE,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        extra_args: Sequence[str] = (),
        runner: Runner | None = None,
    ) -> None:
        self.executable = executable
        self.timeout = timeout
        self.extra_args = list(extra_args)
        self._runner = runner or self._default_runner

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def render(self, source: str, *, fmt: str = "png") -> bytes:
        with tempfile.TemporaryDirectory(prefix="autodoc-render-") as scratch:
            input_path = Path(scratch) / "diagram.mmd"
            output_path = Path(scratch) / f"diagram.{fmt}"
            input_path.write_text(source, encoding="utf-8")
            args = [self.executable, "-i", str(input_path), "-o", str(output_path), *self.extra_args]
            try:
                self._runner(args, self.timeout)
            except FileNotFoundError as exc:
                raise RenderError(f"{self.executable} not found; install @mermaid-js/mermaid-cli") from exc
            except subprocess.TimeoutExpired as exc:
                raise RenderError(f"{self.executable} timed out after {self.timeout:.0f}s") from exc
            except subprocess.CalledProcessError as exc:
                detail = (exc.stderr or exc.stdout or "").strip().splitlines()
                message = detail[-1] if detail else f"exit status {exc.returncode}"
                raise RenderError(f"{self.executable} failed: {message}") from exc
            if not output_path.exists():
                raise RenderError(f"{self.executable} produced no output")
            return output_path.read_bytes()

    @staticmethod
    def _default_runner(args: Sequence[str], timeout: float) -> None:
        subprocess.run(
            list(args),
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )


def render_diagrams(
    writes: Sequence[WriteOutcome],
    results: Sequence[GenerationResult],
    renderer: MermaidRenderer,
    committer: OutputCommitter,
    *,
    max_workers: int = 4,
) -> List[RenderOutcome]:
    """Render every diagram written in this run to a PNG beside its ``.mmd`` file.

    Failures are recorded on the returned outcomes, never raised.
    """
    logger = get_logger("render")
    content: Dict[ArtifactSpec, str] = {
        result.spec: result.content for result in results if result.accepted and result.content
    }
    targets = [outcome for outcome in writes if outcome.spec.is_diagram and outcome.written and outcome.spec in content]
    if not targets:
        return []

    def _render_one(outcome: WriteOutcome) -> RenderOutcome:
        image_path = committer.target_path(outcome.spec).with_suffix(".png")
        data = renderer.render(content[outcome.spec])
        write_bytes(image_path, data)
        return RenderOutcome(outcome.spec, outcome.path, image=image_path)

    rendered: Dict[int, RenderOutcome] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(_render_one, outcome): index for index, outcome in enumerate(targets)}
        for fut in concurrent.futures.as_completed(futures):
            index = futures[fut]
            outcome = targets[index]
            try:
                rendered[index] = fut.result()
            except (RenderError, OSError) as exc:
                logger.warning("Failed to render %s: %s", outcome.path, exc)
                rendered[index] = RenderOutcome(outcome.spec, outcome.path, error=str(exc))
            else:
                logger.info("Rendered %s", rendered[index].image)
    return [rendered[index] for index in range(len(targets))]


__all__ = ["MermaidRenderer", "RenderError", "RenderOutcome", "render_diagrams"]
