import threading

import pytest

from colossus.activity import ActivityModeState, ShutdownSignal
from colossus.models import ActivityMode


def test_mode_defaults_to_planning() -> None:
    state = ActivityModeState()
    assert state.current() is ActivityMode.PLANNING
    assert state.name() == "planning"


def test_request_accepts_operator_modes_case_insensitively() -> None:
    state = ActivityModeState()
    assert state.request(" Developing ") is ActivityMode.DEVELOPING
    assert state.matches(ActivityMode.DEVELOPING)
    assert state.request("planning") is ActivityMode.PLANNING


@pytest.mark.parametrize("name", ["error", "coding", ""])
def test_request_rejects_other_modes(name: str) -> None:
    state = ActivityModeState(ActivityMode.DEVELOPING)
    with pytest.raises(ValueError):
        state.request(name)
    assert state.current() is ActivityMode.DEVELOPING


def test_escalate_then_operator_recovers() -> None:
    state = ActivityModeState(ActivityMode.DEVELOPING)
    assert state.escalate() is ActivityMode.DEVELOPING
    assert state.name() == "error"
    state.request("developing")
    assert state.current() is ActivityMode.DEVELOPING


def test_concurrent_requests_leave_a_valid_mode() -> None:
    state = ActivityModeState()
    names = ["planning", "developing"] * 50
    threads = [threading.Thread(target=state.request, args=(name,)) for name in names]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert state.current() in {ActivityMode.PLANNING, ActivityMode.DEVELOPING}


def test_shutdown_signal_wakes_waiters() -> None:
    signal = ShutdownSignal()
    assert signal.wait(0.01) is False
    signal.trigger()
    signal.trigger()
    assert signal.is_set()
    assert signal.wait(10) is True
