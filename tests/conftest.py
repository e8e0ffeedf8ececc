from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from colossus.models import InvocationResult, Verb


@dataclass
class AgentCall:
    working_dir: Path
    instruction: str
    context_files: list[str]
    model: str | None
    load_file: str | None


@dataclass
class StubCodeAgent:
    """In-process code agent that records calls and optionally edits files."""

    action: Callable[[AgentCall], None] | None = None
    success: bool = True
    calls: list[AgentCall] = field(default_factory=list)

    def invoke(
        self,
        working_dir: Path,
        instruction: str,
        context_files: Sequence[str] = (),
        model: str | None = None,
        load_file: str | None = None,
    ) -> InvocationResult:
        call = AgentCall(Path(working_dir), instruction, list(context_files), model, load_file)
        self.calls.append(call)
        if self.action is not None:
            self.action(call)
        if not self.success:
            return InvocationResult(success=False, exit_code=1, stdout="", stderr="agent exploded")
        return InvocationResult(success=True, exit_code=0, stdout="done\n")


@dataclass
class ScriptedBuildSystem:
    """Build system returning scripted pass/fail results per verb; the last entry repeats."""

    script: dict[Verb, list[bool]] = field(default_factory=dict)
    calls: list[Verb] = field(default_factory=list)

    def run(self, working_dir: Path, verb: Verb) -> InvocationResult:
        self.calls.append(verb)
        outcomes = self.script.get(verb, [True])
        index = min(self.calls.count(verb) - 1, len(outcomes) - 1)
        if outcomes[index]:
            return InvocationResult(success=True, exit_code=0, stdout=f"{verb.value} ok\n")
        return InvocationResult(
            success=False,
            exit_code=2,
            stdout=f"{verb.value} output\n",
            stderr=f"{verb.value} error line\n",
        )

    def count(self, verb: Verb) -> int:
        return self.calls.count(verb)


def set_mtime(path: Path, seconds: float) -> None:
    os.utime(path, (seconds, seconds))


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def agent() -> StubCodeAgent:
    return StubCodeAgent()


@pytest.fixture
def build_system() -> ScriptedBuildSystem:
    return ScriptedBuildSystem()
