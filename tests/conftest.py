from __future__ import annotations

from pathlib import Path

import pytest

from autodoc.models import FileDescriptor, ProjectStructure
from tests._fixtures.backends import FakeClock
from tests._fixtures.repo_builder import RepoBuilder

_ENV_KEYS = (
    "AUTODOC_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "AUTODOC_MODEL",
    "AUTODOC_BASE_URL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials in the developer's shell out of every test."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def structure() -> ProjectStructure:
    """A small Python project structure with excerpts and dependencies."""
    return ProjectStructure(
        project_type="python",
        root="/work/demo",
        files=(
            FileDescriptor("demo/__main__.py", "Python", 120, 'from demo.cli import main\n\nmain()\n'),
            FileDescriptor("demo/cli.py", "Python", 400, "def main() -> None:\n    print('demo')\n"),
            FileDescriptor("pyproject.toml", "TOML", 300, '[project]\nname = "demo"\n'),
            FileDescriptor("tests/test_cli.py", "Python", 90, "def test_main():\n    assert True\n"),
        ),
        dependencies={"requests": ">=2.31", "PyYAML": ""},
        entry_points=("demo/__main__.py", "demo = demo.cli:main"),
    )
