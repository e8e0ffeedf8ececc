from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


TRANSCRIPT_FILE = "TRANSCRIPT.md"
REQUIREMENTS_FILE = "PROJECT.md"
ARCHITECTURE_FILE = "ARCHITECTURE.md"
TASKS_FILE = "TASKS.md"
TEST_STRATEGY_FILE = "TEST_STRATEGY.md"
CONTEXT_FILE = "CONTEXT.md"


class ActivityMode(str, Enum):
    PLANNING = "planning"
    DEVELOPING = "developing"
    ERROR_NEEDS_HUMAN = "error"


# Modes an operator may request directly; ERROR_NEEDS_HUMAN is only reachable by escalation.
OPERATOR_MODES: frozenset[ActivityMode] = frozenset({ActivityMode.PLANNING, ActivityMode.DEVELOPING})


class Verb(str, Enum):
    BUILD = "build"
    TEST = "test"


class PlanningOutcome(str, Enum):
    UP_TO_DATE = "up_to_date"
    REGENERATED = "regenerated"
    TOUCHED = "touched"
    FAILED = "failed"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    ESCALATED = "escalated"


class StageConfig(BaseModel):
    """Declarative definition of one staleness-gated planning stage."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    inputs: list[str] = Field(min_length=1)
    output: str
    instruction: str
    interval_seconds: float = Field(gt=0)
    required_mode: ActivityMode = ActivityMode.PLANNING
    touch_on_noop: bool = True

    @field_validator("name", "output", "instruction")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be non-empty")
        return value.strip()

    @field_validator("inputs")
    @classmethod
    def _clean_inputs(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value]
        if any(not item for item in cleaned):
            raise ValueError("input artifact names must be non-empty")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError(f"duplicate input artifacts: {cleaned}")
        return cleaned

    def with_interval(self, interval_seconds: float) -> "StageConfig":
        return self.model_copy(update={"interval_seconds": interval_seconds})


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one external process invocation (code agent or build system).

    ``exit_code`` is ``-1`` when the process could not be spawned or timed out.
    """

    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def combined_output(self) -> str:
        return f"STDOUT:\n{self.stdout}\nSTDERR:\n{self.stderr}"

    @classmethod
    def spawn_failure(cls, reason: str) -> "InvocationResult":
        return cls(success=False, exit_code=-1, stdout="", stderr=reason)


@dataclass(frozen=True)
class VerificationResult:
    verb: Verb
    passed: bool
    attempts: int
    fix_invocations: int
    last_result: InvocationResult | None = None


@dataclass(frozen=True)
class DevelopmentCycleResult:
    outcome: CycleOutcome
    build: VerificationResult
    test: VerificationResult | None = None
    implementation: InvocationResult | None = None
    mark_complete: InvocationResult | None = None

    @property
    def completed(self) -> bool:
        return self.outcome is CycleOutcome.COMPLETED
