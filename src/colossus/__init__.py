from importlib.metadata import version

from .activity import ActivityModeState, ShutdownSignal
from .collaborators import AiderCodeAgent, BuildSystem, CodeAgent, CodeAgentError, MakeBuildSystem
from .development import DevelopmentStage, VerificationLoop
from .frontend import ModeToggleWatcher, change_code, list_context_files, write_mode_request, write_transcript
from .models import (
    ActivityMode,
    CycleOutcome,
    DevelopmentCycleResult,
    InvocationResult,
    PlanningOutcome,
    StageConfig,
    VerificationResult,
    Verb,
)
from .scheduler import Orchestrator, StageRunner, TickOutcome
from .settings import RuntimeSettings, StartupCheckError, check_requirements
from .staleness import check_staleness, regeneration_required
from .stages import PlanningStage
from .utils import get_stage_config_dir, load_planning_stages


def get_version() -> str:
    try:
        return version(__name__)
    except Exception:
        return "0.0.0"


__all__ = [
    "ActivityMode",
    "ActivityModeState",
    "AiderCodeAgent",
    "BuildSystem",
    "CodeAgent",
    "CodeAgentError",
    "CycleOutcome",
    "DevelopmentCycleResult",
    "DevelopmentStage",
    "InvocationResult",
    "MakeBuildSystem",
    "ModeToggleWatcher",
    "Orchestrator",
    "PlanningOutcome",
    "PlanningStage",
    "RuntimeSettings",
    "ShutdownSignal",
    "StageConfig",
    "StageRunner",
    "StartupCheckError",
    "TickOutcome",
    "Verb",
    "VerificationLoop",
    "VerificationResult",
    "change_code",
    "check_requirements",
    "check_staleness",
    "get_stage_config_dir",
    "list_context_files",
    "load_planning_stages",
    "regeneration_required",
    "write_mode_request",
    "write_transcript",
]
