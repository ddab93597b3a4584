"""Repository scanning: builds the read-only ProjectStructure fed to generation."""

from __future__ import annotations

import json
import os
import re
import tomllib
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .config import CONFIG_FILENAME, ConfigError, load_config
from .logging import get_logger
from .models import FileDescriptor, ProjectStructure

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".tox",
    ".idea",
    ".vscode",
    ".autodoc",
    "dist",
    "build",
    "target",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

_LANGUAGE_BY_SUFFIX = {
    ".py": "Python",
    ".pyi": "Python",
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".jsx": "JavaScript",
    ".java": "Java",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".hh": "C++",
    ".swift": "Swift",
    ".m": "Objective-C",
    ".mm": "Objective-C++",
    ".scala": "Scala",
    ".r": "R",
    ".jl": "Julia",
    ".sh": "Shell",
    ".ps1": "PowerShell",
    ".bat": "Batch",
    ".cmd": "Batch",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".json": "JSON",
    ".toml": "TOML",
}

# Manifest file -> project type, in detection priority order.
_PROJECT_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("pyproject.toml", "python"),
    ("setup.py", "python"),
    ("requirements.txt", "python"),
    ("package.json", "node"),
    ("go.mod", "go"),
    ("Cargo.toml", "rust"),
    ("pom.xml", "java"),
    ("build.gradle", "java"),
    ("build.gradle.kts", "java"),
    ("Gemfile", "ruby"),
    ("composer.json", "php"),
)

_MANIFEST_NAMES = {marker for marker, _ in _PROJECT_MARKERS}
_PYTHON_ENTRY_NAMES = {"__main__.py", "main.py", "app.py", "manage.py", "wsgi.py", "asgi.py"}
_LOW_PRIORITY_SEGMENTS = {"tests", "test", "docs", "doc", "examples", "example", "fixtures"}
_EXCERPT_LANGUAGES_SKIPPED = {"JSON", "YAML"}

DEFAULT_MAX_EXCERPT_BYTES = 16_384
DEFAULT_MAX_FILE_BYTES = 1_048_576


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .autodoc.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if self.directory_only and target.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def _build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    for raw_line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _configured_excludes(root: Path) -> List[str]:
    try:
        return list(load_config(root / CONFIG_FILENAME).exclude_paths)
    except ConfigError:
        return []


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _iter_files(root: Path, rules: Sequence[IgnoreRule], skip_dirs: Iterable[Path] = ()) -> Iterator[Path]:
    skipped = {path.resolve() for path in skip_dirs}
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        filtered_dirs = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if _should_ignore(rel_path, True, rules):
                continue
            if (current_dir / name).resolve() in skipped:
                continue
            filtered_dirs.append(name)
        dirnames[:] = filtered_dirs

        for filename in sorted(filenames):
            if filename in _EXCLUDED_FILES:
                continue
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if _should_ignore(rel_path, False, rules):
                continue
            yield current_dir / filename


def _detect_language(path: Path) -> str | None:
    return _LANGUAGE_BY_SUFFIX.get(path.suffix.lower())


def _read_text(path: Path, *, max_bytes: int) -> str | None:
    try:
        with path.open("rb") as handle:
            raw = handle.read(max_bytes)
    except OSError:
        return None
    if b"\x00" in raw:
        return None
    return raw.decode("utf-8", errors="ignore")


def _load_toml(path: Path) -> Dict[str, object]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _load_json(path: Path) -> Dict[str, object]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _split_requirement(requirement: str) -> Tuple[str, str]:
    """Split ``requests>=2.0`` into ``("requests", ">=2.0")``."""
    text = requirement.strip()
    match = re.match(r"^([A-Za-z0-9][A-Za-z0-9._-]*)(.*)$", text)
    if not match:
        return "", ""
    name, rest = match.group(1), match.group(2).strip()
    if rest.startswith("["):
        rest = rest[rest.find("]") + 1 :].strip() if "]" in rest else ""
    return name, rest.split(";", 1)[0].strip()


def _python_dependencies(root: Path) -> Dict[str, str]:
    deps: Dict[str, str] = {}
    for requirements in sorted(root.glob("requirements*.txt")):
        try:
            lines = requirements.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            continue
        for line in lines:
            stripped = line.split("#", 1)[0].strip()
            if not stripped or stripped.startswith("-"):
                continue
            name, version = _split_requirement(stripped)
            if name:
                deps.setdefault(name, version)

    pyproject = root / "pyproject.toml"
    if pyproject.exists():
        data = _load_toml(pyproject)
        project = data.get("project")
        if isinstance(project, dict):
            for requirement in project.get("dependencies", []) or []:
                if isinstance(requirement, str):
                    name, version = _split_requirement(requirement)
                    if name:
                        deps.setdefault(name, version)
        tool = data.get("tool")
        poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
        poetry_deps = poetry.get("dependencies", {}) if isinstance(poetry, dict) else {}
        if isinstance(poetry_deps, dict):
            for name, spec in poetry_deps.items():
                if name.lower() == "python":
                    continue
                version = _version_of(spec)
                deps.setdefault(name, version)
    return deps


def _node_dependencies(root: Path) -> Dict[str, str]:
    data = _load_json(root / "package.json")
    deps: Dict[str, str] = {}
    for key in ("dependencies", "devDependencies"):
        section = data.get(key)
        if isinstance(section, dict):
            for name, version in section.items():
                deps.setdefault(str(name), str(version))
    return deps


def _go_dependencies(root: Path) -> Dict[str, str]:
    text = _read_text(root / "go.mod", max_bytes=DEFAULT_MAX_FILE_BYTES) or ""
    deps: Dict[str, str] = {}
    in_block = False
    for raw_line in text.splitlines():
        line = raw_line.split("//", 1)[0].strip()
        if line.startswith("require ("):
            in_block = True
            continue
        if in_block and line == ")":
            in_block = False
            continue
        if line.startswith("require "):
            line = line[len("require ") :].strip()
        elif not in_block:
            continue
        parts = line.split()
        if len(parts) >= 2:
            deps.setdefault(parts[0], parts[1])
    return deps


def _version_of(spec: object) -> str:
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return str(spec.get("version", ""))
    return ""


def _rust_dependencies(root: Path) -> Dict[str, str]:
    data = _load_toml(root / "Cargo.toml")
    deps: Dict[str, str] = {}
    for key in ("dependencies", "dev-dependencies"):
        section = data.get(key)
        if not isinstance(section, dict):
            continue
        for name, spec in section.items():
            deps.setdefault(name, _version_of(spec))
    return deps


_DEPENDENCY_LOADERS = {
    "python": _python_dependencies,
    "node": _node_dependencies,
    "go": _go_dependencies,
    "rust": _rust_dependencies,
}


class RepoScanner:
    """Walks a repository and summarises it as a ``ProjectStructure``."""

    def __init__(
        self,
        *,
        exclude_paths: Sequence[str] | None = None,
        skip_dirs: Sequence[Path] = (),
        max_excerpt_bytes: int = DEFAULT_MAX_EXCERPT_BYTES,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    ) -> None:
        self.exclude_paths = list(exclude_paths) if exclude_paths is not None else None
        self.skip_dirs = list(skip_dirs)
        self.max_excerpt_bytes = max_excerpt_bytes
        self.max_file_bytes = max_file_bytes
        self.logger = get_logger("scanner")

    def scan(self, root: str | Path) -> ProjectStructure:
        """Return the structure of the project rooted at ``root``."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Repository path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {root}")

        rules = _parse_gitignore(root_path / ".gitignore")
        excludes = self.exclude_paths if self.exclude_paths is not None else _configured_excludes(root_path)
        for pattern in excludes:
            rule = _build_ignore_rule(pattern)
            if rule is not None:
                rules.append(rule)

        paths = list(_iter_files(root_path, rules, self.skip_dirs))
        rel_paths = [path.relative_to(root_path).as_posix() for path in paths]
        project_type = self._detect_project_type(root_path, rel_paths)
        entry_points = self._detect_entry_points(root_path, rel_paths)

        files: List[FileDescriptor] = []
        for path, rel_path in zip(paths, rel_paths):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            language = _detect_language(path)
            excerpt = None
            if language and language not in _EXCERPT_LANGUAGES_SKIPPED and size <= self.max_file_bytes:
                excerpt = _read_text(path, max_bytes=self.max_excerpt_bytes)
            files.append(FileDescriptor(path=rel_path, language=language, size=size, excerpt=excerpt))

        entry_set = set(entry_points)
        files.sort(key=lambda descriptor: (_file_priority(descriptor.path, entry_set), descriptor.path.count("/"), descriptor.path))

        loader = _DEPENDENCY_LOADERS.get(project_type)
        dependencies = loader(root_path) if loader else {}

        self.logger.debug(
            "Scanned %s: %d files, type=%s, %d dependencies, %d entry points",
            root_path,
            len(files),
            project_type,
            len(dependencies),
            len(entry_points),
        )
        return ProjectStructure(
            project_type=project_type,
            root=str(root_path),
            files=tuple(files),
            dependencies=dependencies,
            entry_points=tuple(entry_points),
        )

    @staticmethod
    def _detect_project_type(root: Path, rel_paths: Sequence[str]) -> str:
        for marker, project_type in _PROJECT_MARKERS:
            if (root / marker).exists():
                return project_type
        counts: Dict[str, int] = {}
        for rel_path in rel_paths:
            language = _detect_language(Path(rel_path))
            if language and language not in _EXCERPT_LANGUAGES_SKIPPED and language != "TOML":
                counts[language] = counts.get(language, 0) + 1
        if not counts:
            return "unknown"
        language = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0]
        return language.lower()

    def _detect_entry_points(self, root: Path, rel_paths: Sequence[str]) -> List[str]:
        entries: List[str] = []
        for rel_path in rel_paths:
            parts = rel_path.split("/")
            name = parts[-1]
            if _LOW_PRIORITY_SEGMENTS.intersection(parts[:-1]):
                continue
            if name in _PYTHON_ENTRY_NAMES and len(parts) <= 3:
                entries.append(rel_path)
            elif name == "main.go" and (len(parts) == 1 or (len(parts) == 3 and parts[0] == "cmd")):
                entries.append(rel_path)
            elif rel_path in {"src/main.rs", "src/index.ts", "src/index.js", "index.js", "server.js"}:
                entries.append(rel_path)

        package_json = _load_json(root / "package.json") if "package.json" in rel_paths else {}
        main = package_json.get("main")
        if isinstance(main, str) and main.strip():
            entries.append(main.strip().removeprefix("./"))
        bin_field = package_json.get("bin")
        if isinstance(bin_field, str):
            entries.append(bin_field.strip().removeprefix("./"))
        elif isinstance(bin_field, dict):
            entries.extend(f"{name} = {target}" for name, target in bin_field.items())

        if "pyproject.toml" in rel_paths:
            project = _load_toml(root / "pyproject.toml").get("project")
            scripts = project.get("scripts") if isinstance(project, dict) else None
            if isinstance(scripts, dict):
                entries.extend(f"{name} = {target}" for name, target in scripts.items())

        seen: set[str] = set()
        unique: List[str] = []
        for entry in entries:
            if entry not in seen:
                seen.add(entry)
                unique.append(entry)
        return unique


def _file_priority(rel_path: str, entry_points: set[str]) -> int:
    if rel_path in entry_points or rel_path in _MANIFEST_NAMES:
        return 0
    if _LOW_PRIORITY_SEGMENTS.intersection(rel_path.split("/")[:-1]):
        return 2
    return 1


__all__ = ["IgnoreRule", "RepoScanner"]
