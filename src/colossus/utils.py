from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

from .models import StageConfig


def get_stage_config_dir() -> Path:
    """Return package-relative path to the planning stage table."""
    return Path(__file__).resolve().parent / "stage_configs"


def load_stage_config(path: Path) -> StageConfig:
    return StageConfig.model_validate_json(path.read_text(encoding="utf-8"))


def load_planning_stages(
    config_dir: Path | None = None,
    *,
    interval_overrides: Mapping[str, float] | None = None,
) -> list[StageConfig]:
    """Load every planning stage config in file-name order.

    Args:
        config_dir: Directory of ``*.json`` stage configs; defaults to the packaged table.
        interval_overrides: Optional ``{stage_name: seconds}`` replacing configured intervals.

    Returns:
        Stage configs ordered by file name.

    Raises:
        FileNotFoundError: If the config directory does not exist.
        ValueError: If configs are empty, duplicated, or an override names an unknown stage.
    """
    directory = config_dir if config_dir is not None else get_stage_config_dir()
    if not directory.is_dir():
        raise FileNotFoundError(f"Stage config directory missing: {directory}")

    stages: list[StageConfig] = []
    seen: set[str] = set()
    for path in sorted(directory.glob("*.json")):
        config = load_stage_config(path)
        if config.name in seen:
            raise ValueError(f"Duplicate stage config '{config.name}' in {path}")
        seen.add(config.name)
        stages.append(config)

    if not stages:
        raise ValueError(f"No stage configs found under {directory}")

    overrides = dict(interval_overrides or {})
    unknown = sorted(set(overrides) - seen)
    if unknown:
        raise ValueError(f"Interval overrides reference unknown stages: {', '.join(unknown)}")
    return [
        config.with_interval(overrides[config.name]) if config.name in overrides else config
        for config in stages
    ]


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) into place so readers never observe a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
