"""Throwaway project trees for scanner and CLI tests."""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any, Mapping, Union

from autodoc.models import ProjectStructure
from autodoc.repo_scanner import RepoScanner

Content = Union[str, bytes]


class RepoBuilder:
    """Writes files under ``<tmp>/repo`` and scans the result."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "repo"
        self.root.mkdir()

    def write(self, files: Mapping[str, Content]) -> None:
        """Write ``path -> contents``; text is dedented, bytes are written as-is."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")

    def write_json(self, relative: str, data: Any) -> None:
        self.write({relative: json.dumps(data, indent=2) + "\n"})

    def scan(self, **scanner_options: Any) -> ProjectStructure:
        return RepoScanner(**scanner_options).scan(self.root)

    def path(self, relative: str = "") -> Path:
        return self.root / relative if relative else self.root


__all__ = ["RepoBuilder"]
