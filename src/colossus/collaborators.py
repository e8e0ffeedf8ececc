"""Capabilities for the external programs the orchestrator drives.

The orchestrator only ever talks to two collaborators: a code agent that edits
project files from a natural-language instruction, and a build system that
exposes ``build`` and ``test`` verbs. Both are modelled as single-method
protocols so stages can be exercised with in-process stubs; the subprocess
implementations below never raise for spawn failures or timeouts and instead
return a failed :class:`~colossus.models.InvocationResult` with exit code -1.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from .models import InvocationResult, Verb

logger = logging.getLogger(__name__)

AIDER_FLAGS: tuple[str, ...] = ("--no-suggest-shell-commands", "--yes-always")


class CodeAgent(Protocol):
    """Anything that can apply a natural-language instruction to a project directory."""

    def invoke(
        self,
        working_dir: Path,
        instruction: str,
        context_files: Sequence[str] = (),
        model: str | None = None,
        load_file: str | None = None,
    ) -> InvocationResult:
        ...


class BuildSystem(Protocol):
    """Anything that can run a build or test verb in a project directory."""

    def run(self, working_dir: Path, verb: Verb) -> InvocationResult:
        ...


class CodeAgentError(RuntimeError):
    """Raised by front-end helpers when a direct code-agent request fails."""

    def __init__(self, message: str, result: InvocationResult) -> None:
        super().__init__(message)
        self.result = result


def run_command(argv: Sequence[str], *, cwd: Path, timeout: float | None = None) -> InvocationResult:
    """Run ``argv`` in ``cwd`` and capture its output.

    Args:
        argv: Program and arguments.
        cwd: Working directory for the child process.
        timeout: Seconds before the child is killed; ``None`` waits forever.

    Returns:
        The invocation result. Spawn errors and timeouts are reported as a
        failed result with exit code -1 and the reason in ``stderr``.
    """
    try:
        proc = subprocess.run(
            list(argv),
            cwd=str(cwd),
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.error("%s timed out after %ss", argv[0], timeout)
        return InvocationResult.spawn_failure(f"{argv[0]} timed out after {timeout}s")
    except (OSError, ValueError) as exc:
        # ValueError: an argument the OS cannot accept, e.g. an embedded NUL byte.
        logger.error("Failed to run %s: %s", argv[0], exc)
        return InvocationResult.spawn_failure(f"Failed to run {argv[0]}: {exc}")

    return InvocationResult(
        success=proc.returncode == 0,
        exit_code=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


class AiderCodeAgent:
    """Code agent backed by the ``aider`` command line."""

    def __init__(self, command: Sequence[str] = ("aider",), *, timeout: float | None = None) -> None:
        if not command:
            raise ValueError("code agent command must be non-empty")
        self.command = list(command)
        self.timeout = timeout

    def build_argv(
        self,
        instruction: str,
        context_files: Sequence[str] = (),
        model: str | None = None,
        load_file: str | None = None,
    ) -> list[str]:
        argv = [*self.command, *AIDER_FLAGS, "--message", instruction]
        if model:
            argv.extend(["--model", model])
        if load_file:
            argv.extend(["--load", load_file])
        argv.extend(context_files)
        return argv

    def invoke(
        self,
        working_dir: Path,
        instruction: str,
        context_files: Sequence[str] = (),
        model: str | None = None,
        load_file: str | None = None,
    ) -> InvocationResult:
        argv = self.build_argv(instruction, context_files, model, load_file)
        logger.debug("Running code agent in %s: %s", working_dir, argv)
        return run_command(argv, cwd=working_dir, timeout=self.timeout)


class MakeBuildSystem:
    """Build system that maps verbs onto ``make`` targets."""

    def __init__(self, command: Sequence[str] = ("make",), *, timeout: float | None = None) -> None:
        if not command:
            raise ValueError("build command must be non-empty")
        self.command = list(command)
        self.timeout = timeout

    def run(self, working_dir: Path, verb: Verb) -> InvocationResult:
        argv = [*self.command, Verb(verb).value]
        logger.info("Running %s in %s", " ".join(argv), working_dir)
        return run_command(argv, cwd=working_dir, timeout=self.timeout)
