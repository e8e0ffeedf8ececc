"""Timestamp-based staleness detection for generated artifacts.

An output artifact must be regenerated when it does not exist yet, or when
at least one of its inputs was modified strictly later than it was. When any
timestamp cannot be read the answer is "no": a transient filesystem error
must never cause a spurious regeneration.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


def regeneration_required(
    output_exists: bool,
    output_mtime: float | None,
    input_mtimes: Sequence[float | None],
) -> bool:
    """Decide whether an output must be regenerated from synthetic timestamps.

    Args:
        output_exists: Whether the output artifact exists.
        output_mtime: Output modification time, ``None`` when unavailable.
        input_mtimes: Input modification times, ``None`` entries when unavailable.

    Returns:
        ``True`` when the output is missing or any input is strictly newer.
    """
    if not output_exists:
        return True
    if output_mtime is None or any(mtime is None for mtime in input_mtimes):
        return False
    return any(mtime > output_mtime for mtime in input_mtimes)


def artifact_mtime(path: Path) -> float | None:
    """Return the modification time of ``path`` or ``None`` when it cannot be read."""
    try:
        return os.stat(path).st_mtime
    except OSError as exc:
        logger.debug("Metadata unavailable for %s: %s", path, exc)
        return None


def check_staleness(output: Path, inputs: Sequence[Path]) -> bool:
    """Apply :func:`regeneration_required` to files on disk. Never raises."""
    try:
        output_mtime: float | None = os.stat(output).st_mtime
    except (FileNotFoundError, NotADirectoryError):
        logger.debug("%s does not exist; regeneration required", output.name)
        return True
    except OSError as exc:
        logger.debug("Metadata unavailable for %s: %s", output, exc)
        output_mtime = None

    input_mtimes = [artifact_mtime(path) for path in inputs]
    missing = [path.name for path, mtime in zip(inputs, input_mtimes) if mtime is None]
    if output_mtime is None or missing:
        logger.info(
            "Could not read modification times for %s; skipping regeneration of %s",
            ", ".join(missing or [output.name]),
            output.name,
        )
        return False

    required = regeneration_required(True, output_mtime, input_mtimes)
    logger.debug(
        "Staleness of %s against %s: %s",
        output.name,
        ", ".join(path.name for path in inputs),
        "stale" if required else "up to date",
    )
    return required
