from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from autodoc.config import (
    CONFIG_FILENAME,
    ConfigError,
    RunConfig,
    build_run_config,
    load_config,
    parse_artifact_names,
)
from autodoc.llm.client import GenerativeClient
from autodoc.models import ArtifactSpec, all_diagrams, all_documents


def _write_config(root: Path, text: str) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    run = build_run_config(config)

    assert config.root == tmp_path.resolve()
    assert run.output_dir == tmp_path.resolve() / "docs"
    assert run.diagrams_dir == tmp_path.resolve() / "docs" / "diagrams"
    assert run.api_key is None
    assert run.model == GenerativeClient.DEFAULT_MODEL
    assert run.requests_per_minute == 15
    assert run.max_attempts == 3
    assert run.artifacts == all_documents() + all_diagrams()
    assert run.force is False
    assert run.rollback_on_abort is False


def test_load_config_reads_every_section(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
llm:
  model: gemini-1.5-pro
  api_key: file-key
  temperature: 0.2
  max_output_tokens: 2048
  request_timeout: 45
generation:
  documents: [readme, api]
  diagrams: [class]
  max_prompt_chars: 20000
  templates_dir: prompts
retry:
  max_attempts: 5
  initial_delay: 0.5
rate_limit:
  requests_per_minute: 10
output:
  directory: site/docs
  diagrams_subdir: charts
  force: yes
  render_diagrams: false
exclude_paths:
  - vendor/
""",
    )

    config = load_config(tmp_path)
    run = build_run_config(config)

    assert config.exclude_paths == ["vendor/"]
    assert config.generation.templates_dir == tmp_path.resolve() / "prompts"
    assert run.api_key == "file-key"
    assert run.model == "gemini-1.5-pro"
    assert run.temperature == 0.2
    assert run.max_output_tokens == 2048
    assert run.request_timeout == 45.0
    assert run.documents == (ArtifactSpec.document("readme"), ArtifactSpec.document("api"))
    assert run.diagrams == (ArtifactSpec.diagram("class"),)
    assert run.max_prompt_chars == 20000
    assert run.max_attempts == 5
    assert run.initial_delay == 0.5
    assert run.requests_per_minute == 10
    assert run.output_dir == tmp_path.resolve() / "site" / "docs"
    assert run.diagrams_dir == tmp_path.resolve() / "site" / "docs" / "charts"
    assert run.force is True
    assert run.render_diagrams is False


def test_overrides_beat_file_and_file_beats_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("AUTODOC_API_KEY", "env-key")
    monkeypatch.setenv("AUTODOC_MODEL", "env-model")
    _write_config(tmp_path, "llm:\n  model: file-model\noutput:\n  force: false\n")

    run = build_run_config(
        load_config(tmp_path),
        output_dir=tmp_path / "out",
        documents=["usage"],
        diagrams=[],
        force=True,
    )

    assert run.api_key == "env-key"
    assert run.model == "file-model"
    assert run.force is True
    assert run.output_dir == (tmp_path / "out").resolve()
    assert run.artifacts == [ArtifactSpec.document("usage")]

    explicit = build_run_config(load_config(tmp_path), api_key="cli-key")
    assert explicit.api_key == "cli-key"


def test_api_key_falls_back_through_provider_variables(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")

    assert build_run_config(load_config(tmp_path)).api_key == "gemini-key"


def test_load_config_accepts_explicit_file(tmp_path: Path) -> None:
    path = tmp_path / "custom.yml"
    path.write_text("rate_limit:\n  requests_per_minute: 4\n", encoding="utf-8")

    assert load_config(path).requests_per_minute == 4


def test_invalid_yaml_raises_config_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "llm: [unclosed\n")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(tmp_path)


def test_non_mapping_root_raises_config_error(tmp_path: Path) -> None:
    _write_config(tmp_path, "- just\n- a list\n")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path)


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    _write_config(tmp_path, "\n")

    assert build_run_config(load_config(tmp_path)).requests_per_minute == 15


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("rate_limit:\n  requests_per_minute: 0\n", "requests_per_minute"),
        ("retry:\n  max_attempts: 0\n", "retry"),
        ("llm:\n  request_timeout: 0\n", "request_timeout"),
        ("generation:\n  max_prompt_chars: 10\n", "max_prompt_chars"),
        ("output:\n  diagrams_subdir: ../elsewhere\n", "diagrams_subdir"),
    ],
)
def test_out_of_range_values_are_rejected(tmp_path: Path, text: str, message: str) -> None:
    _write_config(tmp_path, text)

    with pytest.raises(ConfigError, match=message):
        build_run_config(load_config(tmp_path))


def test_output_path_that_is_a_file_is_rejected(tmp_path: Path) -> None:
    (tmp_path / "docs").write_text("not a directory", encoding="utf-8")

    with pytest.raises(ConfigError, match="is not a directory"):
        build_run_config(load_config(tmp_path), output_dir=tmp_path / "docs")


def test_output_path_below_a_file_is_rejected(tmp_path: Path) -> None:
    (tmp_path / "notes.txt").write_text("plain file", encoding="utf-8")

    with pytest.raises(ConfigError, match="notes.txt exists and is not a directory"):
        build_run_config(load_config(tmp_path), output_dir=tmp_path / "notes.txt" / "docs")


def test_unknown_document_type_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown document type 'changelog'"):
        build_run_config(load_config(tmp_path), documents=["readme", "changelog"])


def test_parse_artifact_names_handles_all_prefixes_and_duplicates() -> None:
    assert parse_artifact_names(["all"], diagram=False) == all_documents()
    assert parse_artifact_names(["Class", "diagram:class", "data-flow", ""], diagram=True) == [
        ArtifactSpec.diagram("class"),
        ArtifactSpec.diagram("data_flow"),
    ]
    with pytest.raises(ConfigError, match="Unknown diagram type"):
        parse_artifact_names(["doc:readme"], diagram=True)


def test_run_config_is_frozen(tmp_path: Path) -> None:
    run = build_run_config(load_config(tmp_path))

    with pytest.raises(dataclasses.FrozenInstanceError):
        run.force = True  # type: ignore[misc]

    changed = run.with_overrides(force=True)
    assert changed.force is True
    assert run.force is False
    assert isinstance(changed, RunConfig)
