from __future__ import annotations

import logging
import threading

from .models import OPERATOR_MODES, ActivityMode

logger = logging.getLogger(__name__)


class ActivityModeState:
    """Shared activity mode guarded by a lock.

    Every accessor acquires the lock for a single read or write and releases
    it immediately, so callers never hold it across an external invocation.
    """

    def __init__(self, initial: ActivityMode = ActivityMode.PLANNING) -> None:
        self._lock = threading.Lock()
        self._mode = ActivityMode(initial)

    def current(self) -> ActivityMode:
        with self._lock:
            return self._mode

    def name(self) -> str:
        """Return the current mode name as exposed to the front-end."""
        return self.current().value

    def matches(self, mode: ActivityMode) -> bool:
        return self.current() is mode

    def request(self, name: str) -> ActivityMode:
        """Apply an operator mode change.

        Only ``planning`` and ``developing`` are accepted; the error state is
        entered through :meth:`escalate` and left by requesting one of these.

        Raises:
            ValueError: If ``name`` is not an operator-settable mode.
        """
        normalized = name.strip().lower()
        try:
            target = ActivityMode(normalized)
        except ValueError as exc:
            raise ValueError(f"Invalid mode specified: {name!r}") from exc
        if target not in OPERATOR_MODES:
            raise ValueError(f"Mode {target.value!r} cannot be set directly; use planning or developing")

        with self._lock:
            previous = self._mode
            self._mode = target
        if previous is not target:
            logger.info("Activity mode changed: %s -> %s", previous.value, target.value)
        return target

    def escalate(self) -> ActivityMode:
        """Force the error state. Returns the mode that was replaced."""
        with self._lock:
            previous = self._mode
            self._mode = ActivityMode.ERROR_NEEDS_HUMAN
        logger.error("Activity mode escalated: %s -> %s", previous.value, ActivityMode.ERROR_NEEDS_HUMAN.value)
        return previous


class ShutdownSignal:
    """Write-once shutdown flag shared by all stage loops."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def trigger(self) -> None:
        if not self._event.is_set():
            logger.info("Shutdown requested")
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None) -> bool:
        """Sleep up to ``timeout`` seconds; returns ``True`` as soon as shutdown is requested."""
        return self._event.wait(timeout)
