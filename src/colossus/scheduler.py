from __future__ import annotations

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from .activity import ActivityModeState, ShutdownSignal
from .collaborators import AiderCodeAgent, BuildSystem, CodeAgent, MakeBuildSystem
from .development import DevelopmentStage
from .frontend import ModeToggleWatcher
from .models import ActivityMode
from .settings import RuntimeSettings
from .stages import PlanningStage
from .utils import load_planning_stages

logger = logging.getLogger(__name__)


class Stage(Protocol):
    """A periodically ticked unit of work gated on the activity mode."""

    name: str
    interval_seconds: float
    required_mode: ActivityMode | None

    def run_once(self) -> Any:
        ...

    def on_skip(self, mode: ActivityMode) -> None:
        ...


class TickOutcome(str, Enum):
    SHUTDOWN = "shutdown"
    SKIPPED = "skipped"
    RAN = "ran"
    FAILED = "failed"


class StageRunner:
    """Drives one stage on its own cadence until shutdown."""

    def __init__(self, stage: Stage, *, mode_state: ActivityModeState, shutdown: ShutdownSignal) -> None:
        self.stage = stage
        self.mode_state = mode_state
        self.shutdown = shutdown
        self.last_result: Any = None

    def tick(self) -> TickOutcome:
        if self.shutdown.is_set():
            return TickOutcome.SHUTDOWN

        required = self.stage.required_mode
        if required is not None:
            mode = self.mode_state.current()
            if mode is not required:
                self.stage.on_skip(mode)
                return TickOutcome.SKIPPED

        try:
            self.last_result = self.stage.run_once()
        except Exception:  # noqa: BLE001
            logger.exception("Stage %s failed during tick", self.stage.name)
            return TickOutcome.FAILED
        return TickOutcome.RAN

    def run(self) -> None:
        logger.debug("Stage %s started (every %ss)", self.stage.name, self.stage.interval_seconds)
        while True:
            self.shutdown.wait(self.stage.interval_seconds)
            if self.tick() is TickOutcome.SHUTDOWN:
                break
        logger.info("Stage %s shutting down cleanly", self.stage.name)


class Orchestrator:
    """Wires every stage to shared mode and shutdown state and runs each on its own thread."""

    def __init__(
        self,
        settings: RuntimeSettings,
        *,
        code_agent: CodeAgent | None = None,
        build_system: BuildSystem | None = None,
        mode_state: ActivityModeState | None = None,
        shutdown: ShutdownSignal | None = None,
        stage_config_dir: Path | None = None,
    ) -> None:
        self.settings = settings
        self.project_dir = settings.project_path
        self.code_agent = (
            code_agent
            if code_agent is not None
            else AiderCodeAgent(settings.code_agent_argv(), timeout=settings.invocation_timeout)
        )
        self.build_system = (
            build_system
            if build_system is not None
            else MakeBuildSystem(settings.build_argv(), timeout=settings.invocation_timeout)
        )
        self.mode_state = (
            mode_state if mode_state is not None else ActivityModeState(ActivityMode(settings.initial_mode))
        )
        self.shutdown = shutdown if shutdown is not None else ShutdownSignal()

        self.planning_stages = [
            PlanningStage(
                config,
                project_dir=self.project_dir,
                code_agent=self.code_agent,
                model=settings.code_model_or_none,
            )
            for config in load_planning_stages(stage_config_dir, interval_overrides=settings.stage_intervals)
        ]
        self.development_stage = DevelopmentStage(
            project_dir=self.project_dir,
            code_agent=self.code_agent,
            build_system=self.build_system,
            mode_state=self.mode_state,
            model=settings.code_model_or_none,
            context_file=settings.context_file,
            max_attempts=settings.max_verify_attempts,
            interval_seconds=settings.development_interval_seconds,
        )
        self.mode_watcher = ModeToggleWatcher(
            settings.mode_file_path(),
            self.mode_state,
            interval_seconds=settings.mode_poll_interval_seconds,
        )
        self.runners = [
            StageRunner(stage, mode_state=self.mode_state, shutdown=self.shutdown)
            for stage in [*self.planning_stages, self.development_stage, self.mode_watcher]
        ]
        self._threads: list[threading.Thread] = []

    @property
    def is_running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        """Start one daemon thread per stage."""
        if self.is_running:
            raise RuntimeError("Orchestrator is already running")
        if self.shutdown.is_set():
            raise RuntimeError("Orchestrator cannot restart after shutdown")
        self._threads = [
            threading.Thread(target=runner.run, name=f"colossus-{runner.stage.name}", daemon=True)
            for runner in self.runners
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Started %d stages in %s (mode=%s)",
            len(self._threads),
            self.project_dir,
            self.mode_state.name(),
        )

    def stop(self) -> None:
        self.shutdown.trigger()

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def run_until_shutdown(self) -> None:
        """Start all stages and block until shutdown is requested or Ctrl-C is pressed."""
        self.start()
        try:
            while not self.shutdown.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping stages")
        finally:
            self.stop()
            # In-flight invocations are not cancelled; wait briefly, then leave daemon threads behind.
            self.join(timeout=5.0)
