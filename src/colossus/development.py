from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .activity import ActivityModeState
from .collaborators import BuildSystem, CodeAgent
from .models import (
    TASKS_FILE,
    ActivityMode,
    CycleOutcome,
    DevelopmentCycleResult,
    InvocationResult,
    VerificationResult,
    Verb,
)

logger = logging.getLogger(__name__)

IMPLEMENT_INSTRUCTION = (
    "find the first UNCOMPLETED task (one without a checkmark ✓) in TASKS.md, working in strict "
    "numerical order from top to bottom, implement it, and create some way to test it"
)
MARK_COMPLETE_INSTRUCTION = "Mark the task we just completed in TASKS.md as done"

_FIX_PREAMBLE = {
    Verb.BUILD: "Fix this build error:",
    Verb.TEST: "Fix these test failures:",
}


def fix_instruction(verb: Verb, result: InvocationResult) -> str:
    """Build the code-agent instruction asking it to repair a failed build or test run.

    NUL bytes are escaped since they cannot be passed as a process argument.
    """
    stdout = result.stdout.replace("\x00", "\\x00")
    stderr = result.stderr.replace("\x00", "\\x00")
    return f"{_FIX_PREAMBLE[Verb(verb)]}\nSTDOUT:\n{stdout}\nSTDERR:\n{stderr}"


class VerificationState(TypedDict, total=False):
    verb: Verb
    load_file: str | None
    attempt: int
    max_attempts: int
    fix_invocations: int
    passed: bool
    last_result: InvocationResult | None


class VerificationLoop:
    """Bounded retry subgraph: attempt -> fix -> attempt ... until pass or budget exhaustion.

    Every failed attempt, including the last, is followed by exactly one fix
    invocation of the code agent that embeds the captured stdout and stderr.
    """

    def __init__(
        self,
        *,
        project_dir: Path,
        code_agent: CodeAgent,
        build_system: BuildSystem,
        model: str | None = None,
        max_attempts: int = 5,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")
        self.project_dir = Path(project_dir)
        self.code_agent = code_agent
        self.build_system = build_system
        self.model = model
        self.max_attempts = max_attempts
        self.graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(VerificationState)
        graph.add_node("attempt", self._attempt_node)
        graph.add_node("fix", self._fix_node)

        graph.add_edge(START, "attempt")
        graph.add_conditional_edges(
            "attempt",
            self._attempt_route,
            {
                "fix": "fix",
                "end": END,
            },
        )
        graph.add_conditional_edges(
            "fix",
            self._fix_route,
            {
                "attempt": "attempt",
                "end": END,
            },
        )
        return graph

    def _attempt_node(self, state: VerificationState) -> dict[str, Any]:
        verb = state["verb"]
        attempt = int(state.get("attempt", 0)) + 1
        max_attempts = int(state["max_attempts"])
        logger.info("%s attempt %d of %d", verb.value.capitalize(), attempt, max_attempts)
        result = self.build_system.run(self.project_dir, verb)
        if result.success:
            logger.info("%s succeeded", verb.value.capitalize())
        else:
            logger.warning("%s failed (exit %s)", verb.value.capitalize(), result.exit_code)
        return {"attempt": attempt, "passed": result.success, "last_result": result}

    def _attempt_route(self, state: VerificationState) -> str:
        return "end" if state.get("passed") else "fix"

    def _fix_node(self, state: VerificationState) -> dict[str, Any]:
        verb = state["verb"]
        failed = state["last_result"]
        logger.info("Attempting to fix %s failure with the code agent", verb.value)
        result = self.code_agent.invoke(
            self.project_dir,
            fix_instruction(verb, failed),
            (),
            self.model,
            state.get("load_file"),
        )
        if not result.success:
            logger.warning("Code agent fix attempt for %s exited with %s", verb.value, result.exit_code)
        return {"fix_invocations": int(state.get("fix_invocations", 0)) + 1}

    def _fix_route(self, state: VerificationState) -> str:
        if int(state.get("attempt", 0)) >= int(state["max_attempts"]):
            return "end"
        return "attempt"

    def run(self, verb: Verb, *, load_file: str | None = None) -> VerificationResult:
        verb = Verb(verb)
        result = self.graph.invoke(
            {
                "verb": verb,
                "load_file": load_file,
                "attempt": 0,
                "max_attempts": self.max_attempts,
                "fix_invocations": 0,
                "passed": False,
                "last_result": None,
            },
            config={"recursion_limit": 2 * self.max_attempts + 10},
        )
        passed = bool(result.get("passed"))
        attempts = int(result.get("attempt", 0))
        if not passed:
            logger.error("%s failed after %d attempts", verb.value.capitalize(), attempts)
        return VerificationResult(
            verb=verb,
            passed=passed,
            attempts=attempts,
            fix_invocations=int(result.get("fix_invocations", 0)),
            last_result=result.get("last_result"),
        )


class DevelopmentState(TypedDict, total=False):
    load_file: str | None
    implementation: InvocationResult | None
    build: VerificationResult | None
    test: VerificationResult | None
    mark_complete: InvocationResult | None
    outcome: CycleOutcome


class DevelopmentStage:
    """Development cycle StateGraph: implement -> build -> test -> mark complete, or escalate.

    One cycle runs per eligible tick. The activity mode is consulted only by
    the scheduler before the cycle starts; once committed, the cycle runs to
    completion. Exhausting either verification budget escalates the shared
    mode to ``ERROR_NEEDS_HUMAN`` and nothing is marked complete.
    """

    name = "development"
    required_mode = ActivityMode.DEVELOPING

    def __init__(
        self,
        *,
        project_dir: Path,
        code_agent: CodeAgent,
        build_system: BuildSystem,
        mode_state: ActivityModeState,
        model: str | None = None,
        context_file: str | None = None,
        max_attempts: int = 5,
        interval_seconds: float = 30.0,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.code_agent = code_agent
        self.mode_state = mode_state
        self.model = model
        self.context_file = context_file
        self.interval_seconds = interval_seconds
        self.verification = VerificationLoop(
            project_dir=self.project_dir,
            code_agent=code_agent,
            build_system=build_system,
            model=model,
            max_attempts=max_attempts,
        )
        self.graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(DevelopmentState)
        graph.add_node("implement", self._implement_node)
        graph.add_node("build_verify", self._build_verify_node)
        graph.add_node("test_verify", self._test_verify_node)
        graph.add_node("mark_complete", self._mark_complete_node)
        graph.add_node("escalate", self._escalate_node)

        graph.add_edge(START, "implement")
        graph.add_edge("implement", "build_verify")
        graph.add_conditional_edges(
            "build_verify",
            self._build_route,
            {
                "test_verify": "test_verify",
                "escalate": "escalate",
            },
        )
        graph.add_conditional_edges(
            "test_verify",
            self._test_route,
            {
                "mark_complete": "mark_complete",
                "escalate": "escalate",
            },
        )
        graph.add_edge("mark_complete", END)
        graph.add_edge("escalate", END)
        return graph

    def _resolve_load_file(self) -> str | None:
        if not self.context_file:
            return None
        if not (self.project_dir / self.context_file).is_file():
            logger.debug("Load file %s not present; invoking code agent without it", self.context_file)
            return None
        return self.context_file

    def _implement_node(self, state: DevelopmentState) -> dict[str, Any]:
        logger.info("Running code agent on next task in %s", self.project_dir)
        result = self.code_agent.invoke(
            self.project_dir,
            IMPLEMENT_INSTRUCTION,
            (TASKS_FILE,),
            self.model,
            state.get("load_file"),
        )
        # Exit status here does not gate the cycle; build verification does.
        if result.success:
            logger.info("Code agent finished task assignment")
        else:
            logger.warning("Code agent task assignment exited with %s", result.exit_code)
        return {"implementation": result}

    def _build_verify_node(self, state: DevelopmentState) -> dict[str, Any]:
        return {"build": self.verification.run(Verb.BUILD, load_file=state.get("load_file"))}

    def _build_route(self, state: DevelopmentState) -> str:
        build = state.get("build")
        return "test_verify" if build is not None and build.passed else "escalate"

    def _test_verify_node(self, state: DevelopmentState) -> dict[str, Any]:
        return {"test": self.verification.run(Verb.TEST, load_file=state.get("load_file"))}

    def _test_route(self, state: DevelopmentState) -> str:
        test = state.get("test")
        return "mark_complete" if test is not None and test.passed else "escalate"

    def _mark_complete_node(self, state: DevelopmentState) -> dict[str, Any]:
        logger.info("Marking off task complete")
        result = self.code_agent.invoke(
            self.project_dir,
            MARK_COMPLETE_INSTRUCTION,
            (TASKS_FILE,),
            self.model,
            state.get("load_file"),
        )
        logger.info("Code agent response:\n%s", result.stdout)
        return {"mark_complete": result, "outcome": CycleOutcome.COMPLETED}

    def _escalate_node(self, state: DevelopmentState) -> dict[str, Any]:
        failed = state.get("test") or state.get("build")
        verb = failed.verb.value if failed is not None else "verification"
        logger.error(
            "SOMETHING IS SERIOUSLY WRONG - %s failed after %d attempts; human intervention required",
            verb,
            failed.attempts if failed is not None else 0,
        )
        self.mode_state.escalate()
        return {"outcome": CycleOutcome.ESCALATED}

    def on_skip(self, mode: ActivityMode) -> None:
        if mode is ActivityMode.ERROR_NEEDS_HUMAN:
            logger.warning("Development halted - human intervention required to fix critical errors")

    def run_once(self) -> DevelopmentCycleResult:
        result = self.graph.invoke(
            {
                "load_file": self._resolve_load_file(),
                "implementation": None,
                "build": None,
                "test": None,
                "mark_complete": None,
            }
        )
        return DevelopmentCycleResult(
            outcome=result["outcome"],
            build=result["build"],
            test=result.get("test"),
            implementation=result.get("implementation"),
            mark_complete=result.get("mark_complete"),
        )
