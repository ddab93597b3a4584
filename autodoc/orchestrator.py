"""Generation pipeline: drives every requested artifact from prompt to disk."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from jinja2 import TemplateError

from .cancellation import CancellationToken, OperationCancelled
from .config import ConfigError, RunConfig
from .llm.client import Completion, GenerativeClient
from .llm.rate_limiter import RateLimiter
from .llm.retry import RetryController, RetryError
from .logging import get_logger, log_failure
from .models import (
    ArtifactSpec,
    Failed,
    GenerationParams,
    GenerationResult,
    ProjectStructure,
    Success,
    WriteOutcome,
)
from .output.committer import CommitError, OutputCommitter
from .prompting.builder import RequestBuilder
from .validators import ContentValidator

CATEGORY_CONFIGURATION = "configuration"
CATEGORY_REQUEST = "request"
CATEGORY_FATAL = "fatal"
CATEGORY_EXHAUSTED = "exhausted"
CATEGORY_VALIDATION = "validation"


class PipelineState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    GENERATING_DOCS = "generating_docs"
    GENERATING_DIAGRAMS = "generating_diagrams"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: Dict[PipelineState, Tuple[PipelineState, ...]] = {
    PipelineState.IDLE: (PipelineState.ANALYZING,),
    PipelineState.ANALYZING: (PipelineState.GENERATING_DOCS, PipelineState.FAILED),
    PipelineState.GENERATING_DOCS: (PipelineState.GENERATING_DIAGRAMS,),
    PipelineState.GENERATING_DIAGRAMS: (PipelineState.COMMITTING,),
    PipelineState.COMMITTING: (PipelineState.DONE, PipelineState.FAILED),
    PipelineState.DONE: (),
    PipelineState.FAILED: (),
}


class TextBackend(Protocol):
    def send(
        self,
        prompt: str,
        params: GenerationParams,
        *,
        system: str | None = None,
    ) -> Completion:
        ...


class PipelineCancelled(RuntimeError):
    """Raised when a run is cancelled; carries the results recorded so far."""

    def __init__(self, results: Sequence[GenerationResult]) -> None:
        super().__init__(f"Generation cancelled after {len(results)} artifact(s)")
        self.results = list(results)


@dataclass
class PipelineReport:
    """Everything a finished run produced, in request order."""

    state: PipelineState = PipelineState.IDLE
    results: List[GenerationResult] = field(default_factory=list)
    writes: List[WriteOutcome] = field(default_factory=list)
    error: Optional[str] = None
    transitions: List[PipelineState] = field(default_factory=list)
    duration: float = 0.0

    @property
    def accepted(self) -> List[GenerationResult]:
        return [result for result in self.results if result.accepted]

    @property
    def failed(self) -> List[GenerationResult]:
        return [result for result in self.results if not result.accepted]

    @property
    def failed_writes(self) -> List[WriteOutcome]:
        return [outcome for outcome in self.writes if outcome.status == "failed"]

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE and not self.failed and not self.failed_writes

    def summary_lines(self) -> List[str]:
        lines = [
            f"Generated {len(self.accepted)}/{len(self.results)} artifact(s)"
            f" in {self.duration:.1f}s ({len(self.failed)} failed)"
        ]
        for result in self.failed:
            lines.append(f"  FAILED  {result.spec.key}: {result.reason}")
        if self.state is PipelineState.FAILED and self.error:
            lines.append(f"Run failed: {self.error}")
            if self.accepted and not self.writes:
                lines.append(f"  {len(self.accepted)} artifact(s) were generated but not written")
            return lines

        counts = {"written": 0, "skipped": 0, "failed": 0}
        for outcome in self.writes:
            counts[outcome.status] += 1
        lines.append(
            f"Wrote {counts['written']} file(s), skipped {counts['skipped']}, {counts['failed']} failed"
        )
        for outcome in self.writes:
            if outcome.status == "skipped":
                lines.append(f"  SKIPPED {outcome.path} (already exists; use --force to overwrite)")
            elif outcome.status == "failed":
                lines.append(f"  FAILED  {outcome.path}: {outcome.outcome.reason}")  # type: ignore[union-attr]
        return lines

    def to_dict(self) -> Dict[str, object]:
        writes_by_spec = {outcome.spec: outcome for outcome in self.writes}
        artifacts: List[Dict[str, object]] = []
        for result in self.results:
            entry: Dict[str, object] = {
                "artifact": result.spec.key,
                "status": "accepted" if result.accepted else "failed",
                "attempts": result.attempts,
                "duration": round(result.duration, 3),
            }
            if not result.accepted:
                entry["reason"] = result.reason
                entry["category"] = result.outcome.category  # type: ignore[union-attr]
            write = writes_by_spec.get(result.spec)
            if write is not None:
                entry["path"] = str(write.path)
                entry["write"] = write.status
                reason = getattr(write.outcome, "reason", None)
                if write.status != "written" and reason:
                    entry["write_reason"] = reason
            artifacts.append(entry)
        return {
            "state": self.state.value,
            "error": self.error,
            "duration": round(self.duration, 3),
            "transitions": [state.value for state in self.transitions],
            "artifacts": artifacts,
        }


class GenerationPipeline:
    """Runs documentation then diagram generation, one artifact at a time.

    Each artifact goes build -> throttle -> send (with retries) -> validate
    and ends as exactly one ``GenerationResult``. Accepted results are handed
    to the committer once every artifact has been attempted. Artifacts are
    never dispatched concurrently; the rate limiter relies on it.
    """

    def __init__(
        self,
        config: RunConfig,
        client: TextBackend | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        retry: RetryController | None = None,
        builder: RequestBuilder | None = None,
        validator: ContentValidator | None = None,
        committer: OutputCommitter | None = None,
        cancel_token: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config
        self.cancel_token = cancel_token or CancellationToken()
        self._client = client
        self._rate_limiter = rate_limiter
        self._clock = clock
        self._sleep = sleep or self.cancel_token.sleep
        self.retry = retry or RetryController(config.retry_policy(), sleep=self._sleep)
        self.builder = builder or RequestBuilder(
            max_prompt_chars=config.max_prompt_chars,
            max_excerpt_chars=config.max_excerpt_chars,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            diagram_max_output_tokens=config.diagram_max_output_tokens,
            templates_dir=config.templates_dir,
        )
        self.validator = validator or ContentValidator()
        self.committer = committer or OutputCommitter(
            config.output_dir,
            force=config.force,
            diagrams_subdir=config.diagrams_subdir,
            rollback_on_abort=config.rollback_on_abort,
        )
        self.state = PipelineState.IDLE
        self.transitions: List[PipelineState] = []
        self.logger = get_logger("pipeline")

    def run(
        self,
        structure: ProjectStructure,
        artifacts: Sequence[ArtifactSpec] | None = None,
    ) -> PipelineReport:
        """Generate, validate and commit the requested artifacts."""
        started = self._clock()
        self.state = PipelineState.IDLE
        self.transitions = []
        report = PipelineReport(transitions=self.transitions)
        documents, diagrams = self._split(artifacts)

        self._transition(PipelineState.ANALYZING)
        self.logger.info(
            "Analyzing %s project at %s (%d files)",
            structure.project_type,
            structure.root,
            len(structure.files),
        )
        if not self.config.api_key:
            reason = "no API key configured (set AUTODOC_API_KEY or llm.api_key)"
        else:
            reason = self._output_location_problem(bool(diagrams))
        if reason is not None:
            self.logger.error("Cannot start generation: %s", reason)
            report.results = [
                GenerationResult(spec, Failed(reason, CATEGORY_CONFIGURATION)) for spec in documents + diagrams
            ]
            report.error = reason
            return self._finish(report, PipelineState.FAILED, started)

        report.results = self._generate(structure, documents, diagrams)

        self._transition(PipelineState.COMMITTING)
        try:
            report.writes = self.committer.commit(report.results)
        except CommitError as exc:
            log_failure(self.logger, "Commit failed", exc)
            report.error = str(exc)
            return self._finish(report, PipelineState.FAILED, started)
        return self._finish(report, PipelineState.DONE, started)

    def _output_location_problem(self, diagrams: bool) -> str | None:
        try:
            self.committer.check_location(diagrams=diagrams)
        except CommitError as exc:
            return str(exc)
        return None

    def generate(
        self,
        structure: ProjectStructure,
        artifacts: Sequence[ArtifactSpec] | None = None,
    ) -> List[GenerationResult]:
        """Run only the generation phases and return the results without writing anything."""
        if not self.config.api_key and self._client is None:
            raise ConfigError("no API key configured (set AUTODOC_API_KEY or llm.api_key)")
        documents, diagrams = self._split(artifacts)
        self.state = PipelineState.ANALYZING
        self.transitions = []
        return self._generate(structure, documents, diagrams)

    def _generate(
        self,
        structure: ProjectStructure,
        documents: Sequence[ArtifactSpec],
        diagrams: Sequence[ArtifactSpec],
    ) -> List[GenerationResult]:
        client = self._resolve_client()
        limiter = self._rate_limiter or RateLimiter(
            self.config.requests_per_minute,
            clock=self._clock,
            sleep=self._sleep,
        )
        results: List[GenerationResult] = []
        phases = (
            (PipelineState.GENERATING_DOCS, documents),
            (PipelineState.GENERATING_DIAGRAMS, diagrams),
        )
        try:
            for state, specs in phases:
                self._transition(state)
                for spec in specs:
                    self.cancel_token.raise_if_cancelled()
                    results.append(self._generate_one(spec, structure, client, limiter))
        except OperationCancelled as exc:
            self.logger.warning("%s; %d artifact(s) finished, nothing will be written", exc, len(results))
            raise PipelineCancelled(results) from exc
        return results

    def _generate_one(
        self,
        spec: ArtifactSpec,
        structure: ProjectStructure,
        client: TextBackend,
        limiter: RateLimiter,
    ) -> GenerationResult:
        started = self._clock()
        try:
            request = self.builder.build(spec, structure)
        except TemplateError as exc:
            return self._record(spec, Failed(f"could not render prompt: {exc}", CATEGORY_REQUEST), 0, started)

        def send() -> Completion:
            limiter.acquire(self.cancel_token)
            return client.send(request.prompt, request.params, system=request.system)

        try:
            outcome = self.retry.execute(send, cancel_token=self.cancel_token, label=spec.key)
        except RetryError as exc:
            category = CATEGORY_FATAL if exc.fatal else CATEGORY_EXHAUSTED
            return self._record(spec, Failed(str(exc), category), exc.attempts, started)

        completion = outcome.value
        if completion.finish_reason == "length":
            self.logger.debug("%s response stopped at the output token limit", spec.key)
        verdict = self.validator.validate(spec.kind, completion.text)
        if not verdict.accepted:
            reason = f"rejected: {verdict.reason}"
            return self._record(spec, Failed(reason, CATEGORY_VALIDATION), outcome.attempts, started)
        return self._record(spec, Success(verdict.content), outcome.attempts, started)

    def _record(
        self,
        spec: ArtifactSpec,
        outcome: Success | Failed,
        attempts: int,
        started: float,
    ) -> GenerationResult:
        result = GenerationResult(spec, outcome, attempts=attempts, duration=self._clock() - started)
        if result.accepted:
            self.logger.info("Generated %s (%d attempt(s), %.1fs)", spec, attempts, result.duration)
        else:
            self.logger.warning("Failed %s: %s", spec, result.reason)
        return result

    def _resolve_client(self) -> TextBackend:
        if self._client is None:
            if not self.config.api_key:
                raise ConfigError("no API key configured (set AUTODOC_API_KEY or llm.api_key)")
            self._client = GenerativeClient(
                self.config.api_key,
                model=self.config.model,
                base_url=self.config.base_url,
                request_timeout=self.config.request_timeout,
            )
        return self._client

    def _split(
        self, artifacts: Sequence[ArtifactSpec] | None
    ) -> Tuple[List[ArtifactSpec], List[ArtifactSpec]]:
        specs = list(artifacts) if artifacts is not None else self.config.artifacts
        documents = [spec for spec in specs if not spec.is_diagram]
        diagrams = [spec for spec in specs if spec.is_diagram]
        return documents, diagrams

    def _transition(self, state: PipelineState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        self.logger.info("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def _finish(self, report: PipelineReport, state: PipelineState, started: float) -> PipelineReport:
        self._transition(state)
        report.state = state
        report.duration = self._clock() - started
        return report


__all__ = [
    "CATEGORY_CONFIGURATION",
    "CATEGORY_EXHAUSTED",
    "CATEGORY_FATAL",
    "CATEGORY_REQUEST",
    "CATEGORY_VALIDATION",
    "GenerationPipeline",
    "PipelineCancelled",
    "PipelineReport",
    "PipelineState",
    "TextBackend",
]
