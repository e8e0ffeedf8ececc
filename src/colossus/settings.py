from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .models import CONTEXT_FILE, OPERATOR_MODES, ActivityMode


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class StartupCheckError(RuntimeError):
    """Raised when the environment cannot host an orchestrator run."""


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    project_dir: str = "./"
    code_model: str = ""
    code_agent_command: str = "aider"
    build_command: str = "make"
    max_verify_attempts: int = 5
    development_interval_seconds: float = 30.0
    stage_intervals: dict[str, float] = field(default_factory=dict)
    invocation_timeout_seconds: float = 0.0
    context_file: str = CONTEXT_FILE
    mode_file: str = ".colossus-mode"
    mode_poll_interval_seconds: float = 2.0
    initial_mode: str = ActivityMode.PLANNING.value
    require_git: bool = True

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            project_dir=os.getenv("COLOSSUS_PROJECT_DIR", "./"),
            code_model=os.getenv("COLOSSUS_CODE_MODEL", ""),
            code_agent_command=os.getenv("COLOSSUS_CODE_AGENT_COMMAND", "aider"),
            build_command=os.getenv("COLOSSUS_BUILD_COMMAND", "make"),
            max_verify_attempts=_get_env_int("COLOSSUS_MAX_VERIFY_ATTEMPTS", default=5, minimum=1, maximum=50),
            development_interval_seconds=_get_env_float("COLOSSUS_DEVELOPMENT_INTERVAL", default=30.0, minimum=0.01),
            stage_intervals=_get_env_intervals("COLOSSUS_STAGE_INTERVALS_JSON"),
            invocation_timeout_seconds=_get_env_float("COLOSSUS_INVOCATION_TIMEOUT", default=0.0, minimum=0.0),
            context_file=os.getenv("COLOSSUS_CONTEXT_FILE", CONTEXT_FILE),
            mode_file=os.getenv("COLOSSUS_MODE_FILE", ".colossus-mode"),
            mode_poll_interval_seconds=_get_env_float("COLOSSUS_MODE_POLL_INTERVAL", default=2.0, minimum=0.01),
            initial_mode=os.getenv("COLOSSUS_INITIAL_MODE", ActivityMode.PLANNING.value),
            require_git=_get_env_bool("COLOSSUS_REQUIRE_GIT", default=True),
        ).normalized()

    @property
    def project_path(self) -> Path:
        return Path(self.project_dir)

    @property
    def code_model_or_none(self) -> str | None:
        return self.code_model or None

    @property
    def invocation_timeout(self) -> float | None:
        """Timeout for external invocations, ``None`` when disabled."""
        return self.invocation_timeout_seconds or None

    def code_agent_argv(self) -> list[str]:
        return shlex.split(self.code_agent_command)

    def build_argv(self) -> list[str]:
        return shlex.split(self.build_command)

    def mode_file_path(self) -> Path:
        path = Path(self.mode_file)
        return path if path.is_absolute() else self.project_path / path

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        if not self.project_dir.strip():
            raise ValueError("COLOSSUS_PROJECT_DIR must be non-empty")

        # -- Command validation --
        if not self.code_agent_argv():
            raise ValueError("COLOSSUS_CODE_AGENT_COMMAND must be non-empty")
        if not self.build_argv():
            raise ValueError("COLOSSUS_BUILD_COMMAND must be non-empty")

        # -- File name validation --
        context_file = self.context_file.strip()
        if not context_file:
            raise ValueError("COLOSSUS_CONTEXT_FILE must be non-empty")
        mode_file = self.mode_file.strip()
        if not mode_file:
            raise ValueError("COLOSSUS_MODE_FILE must be non-empty")

        # -- Numeric bounds validation --
        if self.max_verify_attempts < 1:
            raise ValueError(f"COLOSSUS_MAX_VERIFY_ATTEMPTS must be >= 1, got: {self.max_verify_attempts}")
        if self.development_interval_seconds <= 0:
            raise ValueError(
                f"COLOSSUS_DEVELOPMENT_INTERVAL must be > 0, got: {self.development_interval_seconds}"
            )
        for stage, seconds in self.stage_intervals.items():
            if seconds <= 0:
                raise ValueError(f"Interval override for stage '{stage}' must be > 0, got: {seconds}")

        # -- Mode validation --
        initial_mode = self.initial_mode.strip().lower()
        if initial_mode not in {mode.value for mode in OPERATOR_MODES}:
            raise ValueError("COLOSSUS_INITIAL_MODE must be one of: planning, developing")

        return RuntimeSettings(
            project_dir=self.project_dir.strip(),
            code_model=self.code_model.strip(),
            code_agent_command=self.code_agent_command.strip(),
            build_command=self.build_command.strip(),
            max_verify_attempts=self.max_verify_attempts,
            development_interval_seconds=self.development_interval_seconds,
            stage_intervals=dict(self.stage_intervals),
            invocation_timeout_seconds=self.invocation_timeout_seconds,
            context_file=context_file,
            mode_file=mode_file,
            mode_poll_interval_seconds=self.mode_poll_interval_seconds,
            initial_mode=initial_mode,
            require_git=self.require_git,
        )


def load_project_env(project_dir: Path) -> None:
    """Load ``<project_dir>/.env`` into the process environment without overriding set variables."""
    env_path = project_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def check_requirements(settings: RuntimeSettings) -> None:
    """Verify the project directory can host an orchestrator run.

    Raises:
        StartupCheckError: If the project directory is missing, is not a git
            repository (when required), or OPENAI_API_KEY is unavailable.
    """
    project_path = settings.project_path
    if not project_path.is_dir():
        raise StartupCheckError(f"Project directory does not exist: {project_path}")
    if settings.require_git and not (project_path / ".git").exists():
        raise StartupCheckError("No .git directory found. Please run this from a git repository.")

    load_project_env(project_path)
    if not os.getenv("OPENAI_API_KEY", "").strip():
        raise StartupCheckError(
            "OPENAI_API_KEY environment variable is not set. "
            "Put it in your environment variables or a .env file."
        )


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound.

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_float(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    return parsed


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")


def _get_env_intervals(name: str) -> dict[str, float]:
    """Parse a JSON object of ``{"stage_name": seconds}`` interval overrides."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"{name} must be a JSON object mapping stage name to seconds")

    intervals: dict[str, float] = {}
    for stage, seconds in payload.items():
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            raise ValueError(f"{name} value for '{stage}' must be a number, got: {seconds!r}")
        intervals[str(stage).strip()] = float(seconds)
    return intervals
