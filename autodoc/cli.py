"""CLI entrypoints for autodoc commands."""

from __future__ import annotations

import argparse
import json
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from .cancellation import CancellationToken
from .config import CONFIG_FILENAME, ConfigError, RunConfig, build_run_config, load_config
from .logging import configure_logging, get_logger, log_failure
from .models import DiagramType, DocumentType
from .orchestrator import GenerationPipeline, PipelineCancelled, PipelineReport, PipelineState
from .output.committer import write_bytes
from .prompting.constants import DIAGRAM_PROFILES, DOCUMENT_PROFILES
from .render.mermaid import MermaidRenderer, RenderOutcome, render_diagrams
from .repo_scanner import RepoScanner

EXIT_OK = 0
EXIT_ARTIFACT_FAILURES = 1
EXIT_FATAL = 2
EXIT_CANCELLED = 130


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _split_names(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autodoc",
        description="Generate project documentation and Mermaid diagrams with a generative AI backend.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write DEBUG logs to this file.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print warnings and errors from the logger.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate documentation and diagrams for a project.",
    )
    _add_verbose_option(generate_parser, suppress_default=True)
    generate_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )
    generate_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output directory (defaults to <path>/docs).",
    )
    generate_parser.add_argument(
        "--force",
        action="store_true",
        default=None,
        help="Overwrite files that already exist in the output directory.",
    )
    generate_parser.add_argument(
        "--docs",
        type=_split_names,
        default=None,
        help="Comma-separated document types to generate (see `autodoc list`).",
    )
    generate_parser.add_argument(
        "--diagrams",
        type=_split_names,
        default=None,
        help="Comma-separated diagram types to generate (see `autodoc list`).",
    )
    generate_parser.add_argument(
        "--no-docs",
        action="store_true",
        help="Skip documentation artifacts.",
    )
    generate_parser.add_argument(
        "--no-diagrams",
        action="store_true",
        help="Skip diagram artifacts.",
    )
    generate_parser.add_argument(
        "--no-render",
        action="store_true",
        help="Do not rasterise diagrams with mmdc after writing them.",
    )
    generate_parser.add_argument(
        "--rollback-on-abort",
        action="store_true",
        default=None,
        help="Remove files created by this run if the write batch aborts (e.g. disk full).",
    )
    generate_parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a JSON run report to this file.",
    )
    generate_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to the configuration file (defaults to <path>/{CONFIG_FILENAME}).",
    )

    list_parser = subparsers.add_parser(
        "list",
        help="List the supported document and diagram types.",
    )
    _add_verbose_option(list_parser, suppress_default=True)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for autodoc commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=args.quiet, log_file=args.log_file)

    if args.command == "list":
        _print_types()
        return
    if args.command == "generate":
        status, message = _run_generate(args)
        if status != EXIT_OK:
            parser.exit(status, message)
        return
    parser.exit(EXIT_FATAL, "Unknown command\n")  # pragma: no cover - argparse enforces choices


def _run_generate(args: argparse.Namespace) -> tuple[int, str | None]:
    logger = get_logger("cli")
    project_root = Path(args.path).expanduser().resolve()
    if not project_root.is_dir():
        return EXIT_FATAL, f"Project path is not a directory: {project_root}\n"

    if args.config is not None and not args.config.exists():
        return EXIT_FATAL, f"Configuration error: config file not found: {args.config}\n"
    try:
        file_config = load_config(args.config or project_root)
        run_config = build_run_config(
            file_config,
            project_root=project_root,
            output_dir=args.output,
            documents=[] if args.no_docs else args.docs,
            diagrams=[] if args.no_diagrams else args.diagrams,
            force=args.force,
            rollback_on_abort=args.rollback_on_abort,
            render_diagrams=False if args.no_render else None,
        )
    except ConfigError as exc:
        return EXIT_FATAL, f"Configuration error: {exc}\n"

    if not run_config.artifacts:
        return EXIT_FATAL, "Nothing to generate: every document and diagram type is disabled\n"

    token = CancellationToken()
    try:
        with _cancel_on_interrupt(token):
            scanner = RepoScanner(exclude_paths=file_config.exclude_paths, skip_dirs=[run_config.output_dir])
            structure = scanner.scan(project_root)
            pipeline = GenerationPipeline(run_config, cancel_token=token)
            report = pipeline.run(structure)
    except PipelineCancelled as exc:
        print(f"Cancelled after {len(exc.results)} artifact(s); nothing was written.")
        return EXIT_CANCELLED, None
    except Exception as exc:  # pragma: no cover
        logger.debug("autodoc generate failed", exc_info=True)
        return EXIT_FATAL, f"autodoc generate failed: {exc}\nRun with --verbose for more details.\n"

    renders: List[RenderOutcome] = []
    if report.state is PipelineState.DONE and run_config.render_diagrams:
        renders = _render(report, pipeline, run_config)

    for line in report.summary_lines():
        print(line)
    for outcome in renders:
        if not outcome.ok:
            print(f"  RENDER FAILED {outcome.source}: {outcome.error}")

    if args.report is not None:
        try:
            _write_report(args.report, report, renders)
        except OSError as exc:
            log_failure(logger, f"Could not write report to {args.report}", exc)
            return EXIT_FATAL, None

    if report.state is PipelineState.FAILED:
        return EXIT_FATAL, None
    if report.failed or report.failed_writes:
        return EXIT_ARTIFACT_FAILURES, None
    return EXIT_OK, None


def _render(report: PipelineReport, pipeline: GenerationPipeline, config: RunConfig) -> List[RenderOutcome]:
    if not any(outcome.spec.is_diagram and outcome.written for outcome in report.writes):
        return []
    renderer = MermaidRenderer()
    if not renderer.available():
        get_logger("cli").warning("%s not found on PATH; skipping diagram rendering", renderer.executable)
        return []
    return render_diagrams(
        report.writes,
        report.results,
        renderer,
        pipeline.committer,
        max_workers=config.render_workers,
    )


def _write_report(path: Path, report: PipelineReport, renders: List[RenderOutcome]) -> None:
    payload = report.to_dict()
    payload["renders"] = [
        {
            "artifact": outcome.spec.key,
            "source": str(outcome.source),
            "image": str(outcome.image) if outcome.image else None,
            "error": outcome.error,
        }
        for outcome in renders
    ]
    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    write_bytes(path, (json.dumps(payload, indent=2) + "\n").encode("utf-8"))
    print(f"Report written to {_relativize(path)}")


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Iterator[None]:
    """Turn the first Ctrl-C into a cooperative cancellation request."""

    def _handler(signum: int, frame: Optional[object]) -> None:
        if token.cancelled:
            raise KeyboardInterrupt
        get_logger("cli").warning("Interrupt received; stopping after the current step (press Ctrl-C again to abort)")
        token.cancel()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not on the main thread; leave the default handler in place.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _print_types() -> None:
    print("Documents:")
    for document in DocumentType:
        print(f"  {document.value:<20} {DOCUMENT_PROFILES[document].filename}")
    print("Diagrams:")
    for diagram in DiagramType:
        print(f"  {diagram.value:<20} diagrams/{DIAGRAM_PROFILES[diagram].filename}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
