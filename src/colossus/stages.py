from __future__ import annotations

import logging
from pathlib import Path

from .collaborators import CodeAgent
from .models import ActivityMode, PlanningOutcome, StageConfig
from .staleness import artifact_mtime, check_staleness

logger = logging.getLogger(__name__)


class PlanningStage:
    """Staleness-gated stage: regenerate one artifact from its inputs through the code agent.

    Each run performs at most one code-agent invocation. Failures are logged
    and left for the next tick to re-evaluate; they are never retried here.
    """

    def __init__(
        self,
        config: StageConfig,
        *,
        project_dir: Path,
        code_agent: CodeAgent,
        model: str | None = None,
    ) -> None:
        self.config = config
        self.project_dir = Path(project_dir)
        self.code_agent = code_agent
        self.model = model

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def interval_seconds(self) -> float:
        return self.config.interval_seconds

    @property
    def required_mode(self) -> ActivityMode:
        return self.config.required_mode

    @property
    def output_path(self) -> Path:
        return self.project_dir / self.config.output

    @property
    def input_paths(self) -> list[Path]:
        return [self.project_dir / name for name in self.config.inputs]

    def is_stale(self) -> bool:
        return check_staleness(self.output_path, self.input_paths)

    def on_skip(self, mode: ActivityMode) -> None:
        logger.debug("Stage %s idle in %s mode", self.name, mode.value)

    def run_once(self) -> PlanningOutcome:
        if not self.is_stale():
            return PlanningOutcome.UP_TO_DATE

        output = self.output_path
        mtime_before = artifact_mtime(output)
        logger.info("Updating %s from %s", self.config.output, ", ".join(self.config.inputs))
        result = self.code_agent.invoke(
            self.project_dir,
            self.config.instruction,
            [*self.config.inputs, self.config.output],
            self.model,
        )
        if not result.success:
            logger.error(
                "Code agent failed updating %s (exit %s): %s",
                self.config.output,
                result.exit_code,
                result.stderr.strip(),
            )
            return PlanningOutcome.FAILED

        mtime_after = artifact_mtime(output)
        if mtime_after is not None and (mtime_before is None or mtime_after > mtime_before):
            logger.info("%s updated successfully", self.config.output)
            return PlanningOutcome.REGENERATED

        logger.warning(
            "%s was not updated by the code agent; inputs are probably empty",
            self.config.output,
        )
        if not self.config.touch_on_noop:
            return PlanningOutcome.UP_TO_DATE
        return self._touch_output()

    def _touch_output(self) -> PlanningOutcome:
        # Advance the output past its inputs so the next tick does not re-trigger.
        try:
            self.output_path.touch(exist_ok=True)
        except OSError as exc:
            logger.error("Failed to update %s timestamp: %s", self.config.output, exc)
            return PlanningOutcome.FAILED
        logger.info("Touched %s to update its modification time", self.config.output)
        return PlanningOutcome.TOUCHED
