"""Configuration loading for autodoc (.autodoc.yml) and the immutable run configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from .llm.client import GenerativeClient
from .llm.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    RetryPolicy,
)
from .models import ArtifactSpec, all_diagrams, all_documents, dedupe_specs
from .output.committer import blocking_path
from .prompting.builder import (
    DEFAULT_DIAGRAM_MAX_OUTPUT_TOKENS,
    DEFAULT_MAX_EXCERPT_CHARS,
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MAX_PROMPT_CHARS,
    DEFAULT_TEMPERATURE,
)

CONFIG_FILENAME = ".autodoc.yml"
DEFAULT_OUTPUT_DIR = "docs"
DEFAULT_DIAGRAMS_SUBDIR = "diagrams"
DEFAULT_REQUESTS_PER_MINUTE = 15
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_RENDER_WORKERS = 4


class ConfigError(RuntimeError):
    """Raised when configuration is missing, unreadable, or invalid."""


@dataclass
class LLMConfig:
    """Backend settings from .autodoc.yml."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    diagram_max_output_tokens: Optional[int] = None
    request_timeout: Optional[float] = None


@dataclass
class GenerationConfig:
    """Which artifacts to generate and how large prompts may grow."""

    documents: Optional[List[str]] = None
    diagrams: Optional[List[str]] = None
    max_prompt_chars: Optional[int] = None
    max_excerpt_chars: Optional[int] = None
    templates_dir: Optional[Path] = None


@dataclass
class RetryConfig:
    max_attempts: Optional[int] = None
    initial_delay: Optional[float] = None
    backoff_multiplier: Optional[float] = None
    max_delay: Optional[float] = None


@dataclass
class OutputConfig:
    directory: Optional[Path] = None
    diagrams_subdir: Optional[str] = None
    force: Optional[bool] = None
    rollback_on_abort: Optional[bool] = None
    render_diagrams: Optional[bool] = None
    render_workers: Optional[int] = None


@dataclass
class AutodocConfig:
    """Represents the settings defined in .autodoc.yml."""

    root: Path
    llm: LLMConfig = field(default_factory=LLMConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    requests_per_minute: Optional[int] = None
    output: OutputConfig = field(default_factory=OutputConfig)
    exclude_paths: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RunConfig:
    """Everything one pipeline run needs, fixed at run start."""

    project_root: Path
    output_dir: Path
    api_key: Optional[str] = None
    model: str = GenerativeClient.DEFAULT_MODEL
    base_url: str = GenerativeClient.DEFAULT_BASE_URL
    documents: Tuple[ArtifactSpec, ...] = field(default_factory=lambda: tuple(all_documents()))
    diagrams: Tuple[ArtifactSpec, ...] = field(default_factory=lambda: tuple(all_diagrams()))
    force: bool = False
    diagrams_subdir: str = DEFAULT_DIAGRAMS_SUBDIR
    rollback_on_abort: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_MAX_DELAY
    requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    diagram_max_output_tokens: int = DEFAULT_DIAGRAM_MAX_OUTPUT_TOKENS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS
    max_excerpt_chars: int = DEFAULT_MAX_EXCERPT_CHARS
    templates_dir: Optional[Path] = None
    render_diagrams: bool = True
    render_workers: int = DEFAULT_RENDER_WORKERS

    @property
    def artifacts(self) -> List[ArtifactSpec]:
        return list(self.documents) + list(self.diagrams)

    @property
    def diagrams_dir(self) -> Path:
        return self.output_dir / self.diagrams_subdir

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay,
        )

    def with_overrides(self, **changes: Any) -> "RunConfig":
        return replace(self, **changes)


def load_config(config_path: Path) -> AutodocConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return AutodocConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    llm_data = _as_dict(data.get("llm"))
    llm = LLMConfig(
        model=_as_str(llm_data.get("model")),
        base_url=_as_str(llm_data.get("base_url")),
        api_key=_as_str(llm_data.get("api_key")),
        temperature=_as_float(llm_data.get("temperature")),
        max_output_tokens=_as_int(llm_data.get("max_output_tokens")),
        diagram_max_output_tokens=_as_int(llm_data.get("diagram_max_output_tokens")),
        request_timeout=_as_float(llm_data.get("request_timeout")),
    )

    generation_data = _as_dict(data.get("generation"))
    templates_dir_str = _as_str(generation_data.get("templates_dir"))
    generation = GenerationConfig(
        documents=_as_optional_str_list(generation_data.get("documents")),
        diagrams=_as_optional_str_list(generation_data.get("diagrams")),
        max_prompt_chars=_as_int(generation_data.get("max_prompt_chars")),
        max_excerpt_chars=_as_int(generation_data.get("max_excerpt_chars")),
        templates_dir=root / templates_dir_str if templates_dir_str else None,
    )

    retry_data = _as_dict(data.get("retry"))
    retry = RetryConfig(
        max_attempts=_as_int(retry_data.get("max_attempts")),
        initial_delay=_as_float(retry_data.get("initial_delay")),
        backoff_multiplier=_as_float(retry_data.get("backoff_multiplier")),
        max_delay=_as_float(retry_data.get("max_delay")),
    )

    rate_data = _as_dict(data.get("rate_limit"))

    output_data = _as_dict(data.get("output"))
    directory_str = _as_str(output_data.get("directory"))
    output = OutputConfig(
        directory=root / directory_str if directory_str else None,
        diagrams_subdir=_as_str(output_data.get("diagrams_subdir")),
        force=_as_bool(output_data.get("force")),
        rollback_on_abort=_as_bool(output_data.get("rollback_on_abort")),
        render_diagrams=_as_bool(output_data.get("render_diagrams")),
        render_workers=_as_int(output_data.get("render_workers")),
    )

    return AutodocConfig(
        root=root,
        llm=llm,
        generation=generation,
        retry=retry,
        requests_per_minute=_as_int(rate_data.get("requests_per_minute")),
        output=output,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
    )


def build_run_config(
    config: AutodocConfig,
    *,
    project_root: Path | None = None,
    output_dir: Path | None = None,
    api_key: str | None = None,
    documents: Sequence[str] | None = None,
    diagrams: Sequence[str] | None = None,
    force: bool | None = None,
    rollback_on_abort: bool | None = None,
    render_diagrams: bool | None = None,
) -> RunConfig:
    """Merge CLI overrides, file values, environment and defaults into a ``RunConfig``.

    Precedence is CLI override, then config file, then environment, then default.
    The credential is not required here; the pipeline reports its absence.
    """
    root = (project_root or config.root).resolve()
    llm = config.llm
    generation = config.generation
    retry = config.retry
    output = config.output

    resolved_output = output_dir or output.directory or (root / DEFAULT_OUTPUT_DIR)
    document_names = documents if documents is not None else generation.documents
    diagram_names = diagrams if diagrams is not None else generation.diagrams

    defaults = RunConfig(project_root=root, output_dir=resolved_output)
    try:
        run_config = RunConfig(
            project_root=root,
            output_dir=Path(resolved_output).expanduser().resolve(),
            api_key=GenerativeClient.resolve_api_key(api_key or llm.api_key),
            model=GenerativeClient.resolve_model(llm.model),
            base_url=GenerativeClient.resolve_base_url(llm.base_url),
            documents=tuple(parse_artifact_names(document_names, diagram=False))
            if document_names is not None
            else defaults.documents,
            diagrams=tuple(parse_artifact_names(diagram_names, diagram=True))
            if diagram_names is not None
            else defaults.diagrams,
            force=_first_set(force, output.force, defaults.force),
            diagrams_subdir=output.diagrams_subdir or defaults.diagrams_subdir,
            rollback_on_abort=_first_set(rollback_on_abort, output.rollback_on_abort, defaults.rollback_on_abort),
            max_attempts=_first_set(retry.max_attempts, defaults.max_attempts),
            initial_delay=_first_set(retry.initial_delay, defaults.initial_delay),
            backoff_multiplier=_first_set(retry.backoff_multiplier, defaults.backoff_multiplier),
            max_delay=_first_set(retry.max_delay, defaults.max_delay),
            requests_per_minute=_first_set(config.requests_per_minute, defaults.requests_per_minute),
            temperature=_first_set(llm.temperature, defaults.temperature),
            max_output_tokens=_first_set(llm.max_output_tokens, defaults.max_output_tokens),
            diagram_max_output_tokens=_first_set(
                llm.diagram_max_output_tokens, defaults.diagram_max_output_tokens
            ),
            request_timeout=_first_set(llm.request_timeout, defaults.request_timeout),
            max_prompt_chars=_first_set(generation.max_prompt_chars, defaults.max_prompt_chars),
            max_excerpt_chars=_first_set(generation.max_excerpt_chars, defaults.max_excerpt_chars),
            templates_dir=generation.templates_dir,
            render_diagrams=_first_set(render_diagrams, output.render_diagrams, defaults.render_diagrams),
            render_workers=_first_set(output.render_workers, defaults.render_workers),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    _check_ranges(run_config)
    return run_config


def parse_artifact_names(names: Iterable[str], *, diagram: bool) -> List[ArtifactSpec]:
    """Turn subtype names (``readme``, ``class``) into specs, or raise ``ConfigError``."""
    specs: List[ArtifactSpec] = []
    for raw in names:
        name = str(raw).strip()
        if not name:
            continue
        if name.lower() == "all":
            specs.extend(all_diagrams() if diagram else all_documents())
            continue
        try:
            if ":" in name:
                spec = ArtifactSpec.parse(name)
                if spec.is_diagram != diagram:
                    raise ValueError(f"{name!r} is not a {'diagram' if diagram else 'document'} type")
            else:
                spec = ArtifactSpec.diagram(name) if diagram else ArtifactSpec.document(name)
        except ValueError as exc:
            kind = "diagram" if diagram else "document"
            raise ConfigError(f"Unknown {kind} type {name!r}") from exc
        specs.append(spec)
    return dedupe_specs(specs)


def _check_ranges(config: RunConfig) -> None:
    try:
        config.retry_policy()
    except ValueError as exc:
        raise ConfigError(f"Invalid retry settings: {exc}") from exc
    if config.requests_per_minute < 1:
        raise ConfigError("rate_limit.requests_per_minute must be at least 1")
    if config.request_timeout <= 0:
        raise ConfigError("llm.request_timeout must be positive")
    if config.max_prompt_chars < 1000:
        raise ConfigError("generation.max_prompt_chars must be at least 1000")
    if config.max_excerpt_chars < 0:
        raise ConfigError("generation.max_excerpt_chars must not be negative")
    if config.render_workers < 1:
        raise ConfigError("output.render_workers must be at least 1")
    if not config.diagrams_subdir or os.sep in config.diagrams_subdir.strip(os.sep) or config.diagrams_subdir in {".", ".."}:
        raise ConfigError("output.diagrams_subdir must be a single directory name")
    for directory in (config.output_dir, config.output_dir / config.diagrams_subdir):
        blocker = blocking_path(directory)
        if blocker is not None:
            raise ConfigError(f"Output path {blocker} exists and is not a directory")


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def _as_optional_str_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    return _as_str_list(value)


__all__ = [
    "AutodocConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "GenerationConfig",
    "LLMConfig",
    "OutputConfig",
    "RetryConfig",
    "RunConfig",
    "build_run_config",
    "load_config",
    "parse_artifact_names",
]
