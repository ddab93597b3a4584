"""Fake backend and clock used to drive the pipeline without network or real time."""

from __future__ import annotations

import re
from typing import Callable, Dict, Iterable, List, Optional, Union

from autodoc.llm.client import Completion
from autodoc.models import GenerationParams

_ARTIFACT_LINE = re.compile(r"^Artifact: .* \(((?:doc|diagram):\w+)\)$", re.MULTILINE)

Scripted = Union[str, BaseException]


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


def artifact_key(prompt: str) -> str:
    match = _ARTIFACT_LINE.search(prompt)
    if match is None:
        raise AssertionError("prompt does not name its artifact")
    return match.group(1)


def default_response(key: str) -> str:
    if key.startswith("diagram:"):
        return "flowchart TD\n    A[Start] --> B[Finish]\n"
    return f"# {key}\n\nGenerated body for {key}.\n"


class ScriptedBackend:
    """Replays scripted responses or errors per artifact key, then falls back to valid content."""

    def __init__(
        self,
        script: Optional[Dict[str, Iterable[Scripted]]] = None,
        *,
        clock: Optional[FakeClock] = None,
        on_send: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.script: Dict[str, List[Scripted]] = {key: list(items) for key, items in (script or {}).items()}
        self.clock = clock
        self.on_send = on_send
        self.calls: List[str] = []
        self.call_times: List[float] = []
        self.params: List[GenerationParams] = []

    def send(self, prompt: str, params: GenerationParams, *, system: str | None = None) -> Completion:
        key = artifact_key(prompt)
        self.calls.append(key)
        self.params.append(params)
        if self.clock is not None:
            self.call_times.append(self.clock())
        if self.on_send is not None:
            self.on_send(key)
        queue = self.script.get(key)
        if queue:
            item = queue.pop(0)
            if isinstance(item, BaseException):
                raise item
            return Completion(text=item, finish_reason="stop")
        return Completion(text=default_response(key), finish_reason="stop")

    def count(self, key: str) -> int:
        return self.calls.count(key)


__all__ = ["FakeClock", "ScriptedBackend", "artifact_key", "default_response"]
