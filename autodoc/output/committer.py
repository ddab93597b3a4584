"""Crash-safe persistence of accepted artifacts."""

from __future__ import annotations

import errno
import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Iterable, List, Sequence

from ..logging import get_logger
from ..models import (
    ArtifactSpec,
    GenerationResult,
    Skipped,
    WriteFailed,
    WriteOutcome,
    Written,
)
from ..prompting.constants import profile_for

# Errors that affect the whole filesystem rather than a single file.
_BATCH_FATAL_ERRNOS = {errno.ENOSPC, errno.EROFS}
if hasattr(errno, "EDQUOT"):
    _BATCH_FATAL_ERRNOS.add(errno.EDQUOT)

_UMASK_LOCK = threading.Lock()


class CommitError(RuntimeError):
    """Raised when the output location cannot be prepared at all."""


def _current_umask() -> int:
    # os.umask can only be read by setting it; render workers write concurrently.
    with _UMASK_LOCK:
        mask = os.umask(0)
        os.umask(mask)
    return mask


def _target_mode(path: Path) -> int:
    """Mode the replacement should carry: the old file's, else ``0o666`` minus umask."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return 0o666 & ~_current_umask()


def blocking_path(directory: Path) -> Path | None:
    """Return the nearest existing path at or above ``directory`` if it is not a directory."""
    for candidate in (directory, *directory.parents):
        if candidate.exists():
            return None if candidate.is_dir() else candidate
    return None


def write_bytes(path: Path, data: bytes) -> None:
    """Atomically replace ``path`` with ``data``.

    The bytes go to a temporary file in the same directory which is flushed,
    fsynced and renamed over the target, so readers only ever see the old
    file or the complete new one. ``mkstemp`` creates the file as ``0o600``;
    it is given the mode an ordinary write would have produced before the
    rename.
    """
    mode = _target_mode(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.chmod(temp_name, mode)
            os.fsync(handle.fileno())
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


class OutputCommitter:
    """Writes accepted generation results to their deterministic target paths."""

    def __init__(
        self,
        output_dir: Path,
        *,
        force: bool = False,
        diagrams_subdir: str = "diagrams",
        rollback_on_abort: bool = False,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.diagrams_dir = self.output_dir / diagrams_subdir
        self.force = force
        self.rollback_on_abort = rollback_on_abort
        self.logger = get_logger("committer")

    def target_path(self, spec: ArtifactSpec) -> Path:
        filename = profile_for(spec).filename
        if spec.is_diagram:
            return self.diagrams_dir / filename
        return self.output_dir / filename

    def check_location(self, *, diagrams: bool = True) -> None:
        """Raise ``CommitError`` if a regular file sits where an output directory must go."""
        directories = [self.output_dir]
        if diagrams:
            directories.append(self.diagrams_dir)
        for directory in directories:
            blocker = blocking_path(directory)
            if blocker is not None:
                raise CommitError(f"Output path {blocker} exists and is not a directory")

    def prepare(self, *, diagrams: bool = True) -> None:
        """Create the output directories, raising ``CommitError`` if that is impossible."""
        directories = [self.output_dir]
        if diagrams:
            directories.append(self.diagrams_dir)
        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise CommitError(f"Cannot create output directory {directory}: {exc}") from exc
            if not directory.is_dir():
                raise CommitError(f"Output path {directory} is not a directory")

    def commit(self, results: Sequence[GenerationResult]) -> List[WriteOutcome]:
        """Persist every accepted result and return one outcome per accepted result."""
        accepted = [result for result in results if result.accepted]
        if not accepted:
            return []
        self.prepare(diagrams=any(result.spec.is_diagram for result in accepted))

        outcomes: List[WriteOutcome] = []
        created: List[int] = []
        abort_reason: str | None = None

        for result in accepted:
            path = self.target_path(result.spec)
            if abort_reason is not None:
                outcomes.append(
                    WriteOutcome(result.spec, path, WriteFailed(f"not written: batch aborted ({abort_reason})"))
                )
                continue

            existed = path.exists()
            if existed and not self.force:
                self.logger.warning("Skipping %s: %s already exists (use --force to overwrite)", result.spec, path)
                outcomes.append(WriteOutcome(result.spec, path, Skipped()))
                continue

            try:
                write_bytes(path, (result.content or "").encode("utf-8"))
            except OSError as exc:
                reason = exc.strerror or str(exc)
                self.logger.error("Failed to write %s to %s: %s", result.spec, path, reason)
                outcomes.append(WriteOutcome(result.spec, path, WriteFailed(reason)))
                if exc.errno in _BATCH_FATAL_ERRNOS:
                    abort_reason = reason
                continue

            self.logger.info("Wrote %s to %s", result.spec, path)
            if not existed:
                created.append(len(outcomes))
            outcomes.append(WriteOutcome(result.spec, path, Written()))

        if abort_reason is not None and self.rollback_on_abort:
            self._rollback(outcomes, created, abort_reason)
        return outcomes

    def _rollback(self, outcomes: List[WriteOutcome], created: Iterable[int], reason: str) -> None:
        for index in created:
            outcome = outcomes[index]
            try:
                outcome.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                self.logger.error("Could not roll back %s: %s", outcome.path, exc)
                continue
            self.logger.warning("Rolled back %s after batch abort", outcome.path)
            outcomes[index] = WriteOutcome(
                outcome.spec,
                outcome.path,
                WriteFailed(f"rolled back after batch abort ({reason})"),
            )


__all__ = ["CommitError", "OutputCommitter", "blocking_path", "write_bytes"]
