"""File-level plumbing shared with the conversational front-end.

The front-end owns the conversation; the orchestrator only sees the files it
leaves behind: the running transcript, a mode toggle file, and optional
``CONTEXT_*.md`` load scripts for direct change requests.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .activity import ActivityModeState
from .collaborators import CodeAgent, CodeAgentError
from .models import OPERATOR_MODES, TRANSCRIPT_FILE, ActivityMode
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

NO_CONTEXT = "None"


def write_transcript(project_dir: Path, content: str) -> Path:
    """Replace the transcript file with ``content``."""
    path = Path(project_dir) / TRANSCRIPT_FILE
    atomic_write_text(path, content)
    logger.info("Transcript updated (%d characters)", len(content))
    return path


def list_context_files(project_dir: Path) -> list[str]:
    """Return the ``CONTEXT_*.md`` files available for direct requests, or ``["None"]``."""
    names = sorted(
        path.name
        for path in Path(project_dir).glob("CONTEXT_*.md")
        if path.is_file()
    )
    return names or [NO_CONTEXT]


def write_mode_request(mode_file: Path, name: str) -> ActivityMode:
    """Validate an operator mode request and write it to the toggle file.

    Raises:
        ValueError: If ``name`` is not ``planning`` or ``developing``.
    """
    normalized = name.strip().lower()
    allowed = sorted(mode.value for mode in OPERATOR_MODES)
    if normalized not in allowed:
        raise ValueError(f"Invalid mode specified: {name!r}; expected one of: {', '.join(allowed)}")
    atomic_write_text(Path(mode_file), f"{normalized}\n")
    return ActivityMode(normalized)


class ModeToggleWatcher:
    """Applies operator mode requests written to the toggle file.

    Runs in every activity mode. A request is applied once per change of the
    file (modification time or content), so rewriting the same mode after an
    escalation takes effect again. A file already present when the watcher is
    created is left over from an earlier run and is not applied.
    """

    name = "mode_toggle"
    required_mode: ActivityMode | None = None

    def __init__(self, mode_file: Path, mode_state: ActivityModeState, *, interval_seconds: float = 2.0) -> None:
        self.mode_file = Path(mode_file)
        self.mode_state = mode_state
        self.interval_seconds = interval_seconds
        self._last_seen: tuple[int, str] | None = self._read_signature()
        if self._last_seen is not None:
            logger.info("Ignoring existing mode toggle request %r in %s", self._last_seen[1], self.mode_file.name)

    def _read_signature(self) -> tuple[int, str] | None:
        try:
            mtime_ns = self.mode_file.stat().st_mtime_ns
            requested = self.mode_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read mode toggle file %s: %s", self.mode_file, exc)
            return None
        return (mtime_ns, requested)

    def on_skip(self, mode: ActivityMode) -> None:
        return None

    def run_once(self) -> ActivityMode | None:
        signature = self._read_signature()
        if signature is None:
            return None
        requested = signature[1]
        if signature == self._last_seen:
            return None
        self._last_seen = signature

        try:
            return self.mode_state.request(requested)
        except ValueError as exc:
            logger.warning("Ignoring mode toggle request in %s: %s", self.mode_file.name, exc)
            return None


def change_code(
    code_agent: CodeAgent,
    project_dir: Path,
    change: str,
    *,
    context: str = NO_CONTEXT,
    model: str | None = None,
) -> str:
    """Run one direct change or question request through the code agent.

    Args:
        code_agent: Agent used for the request.
        project_dir: Working directory.
        change: Natural-language request.
        context: Load script name, or ``"None"`` for no load script.
        model: Optional model identifier.

    Returns:
        The agent's stdout.

    Raises:
        ValueError: If ``change`` is empty.
        CodeAgentError: If the agent could not run or exited unsuccessfully.
    """
    if not change.strip():
        raise ValueError("change request must be non-empty")
    load_file = None if context == NO_CONTEXT else context
    result = code_agent.invoke(Path(project_dir), change, (), model, load_file)
    if not result.success:
        raise CodeAgentError(f"Code agent command failed: {result.stderr.strip()}", result)
    return result.stdout
