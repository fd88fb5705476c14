import pytest

from beu_result.deriver import ResultLocator
from beu_result.viewer import LoadState, ViewerSession, step_registration_number

BASE = "https://results.beup.ac.in/ResultsBTech4thSem2024_B2022Pub.aspx"


@pytest.fixture
def locator():
    return ResultLocator(BASE, "IV", "22CS007")


@pytest.fixture
def session(timers):
    return ViewerSession(retry_interval=30.0, timer_factory=timers)


# --- paging ---

@pytest.mark.parametrize("value, direction, expected", [
    ("22CS007", "next", "22CS008"),
    ("22CS007", "prev", "22CS006"),
    ("22CS099", "next", "22CS100"),
    ("22CS999", "next", "22CS1000"),
    ("22CS010", "prev", "22CS009"),
    ("00", "prev", "00"),
    ("22CS000", "prev", "22CS000"),
    ("22102107005", "next", "22102107006"),
])
def test_step_registration_number(value, direction, expected):
    assert step_registration_number(value, direction) == expected


def test_step_without_trailing_digits():
    assert step_registration_number("22CSE", "next") is None
    assert step_registration_number("", "prev") is None


def test_step_is_reversible_above_floor():
    for value in ("22CS001", "22102107005", "7", "X099"):
        assert step_registration_number(step_registration_number(value, "next"), "prev") == value


def test_step_rejects_unknown_direction():
    with pytest.raises(ValueError):
        step_registration_number("22CS007", "sideways")


# --- state machine ---

def test_starts_idle(session, timers):
    assert session.load_state is LoadState.IDLE
    assert session.reload_nonce == 0
    assert not session.auto_retry_enabled
    assert not timers


def test_enter_starts_loading_and_arms_timer(session, locator, timers):
    session.enter(locator)
    assert session.load_state is LoadState.LOADING
    assert session.auto_retry_enabled
    assert session.reload_nonce == 1
    assert len(timers.pending) == 1
    assert timers.pending[0].interval == 30.0


def test_loaded_stops_retrying(session, locator, timers):
    session.enter(locator)
    assert session.frame_loaded(1)
    assert session.load_state is LoadState.LOADED
    assert not session.auto_retry_enabled
    assert not session.retry_armed
    assert not timers.pending


def test_retry_fires_while_loading(session, locator, timers):
    session.enter(locator)
    timers.pending[0].fire()
    assert session.load_state is LoadState.LOADING
    assert session.reload_nonce == 2
    assert len(timers.pending) == 1
    timers.pending[0].fire()
    assert session.reload_nonce == 3


def test_error_keeps_retry_eligible(session, locator, timers):
    session.enter(locator)
    assert session.frame_errored(1)
    assert session.load_state is LoadState.ERRORED
    assert session.auto_retry_enabled
    assert session.retry_armed
    timers.pending[0].fire()
    assert session.load_state is LoadState.LOADING
    assert session.reload_nonce == 2


def test_loaded_never_reloads_without_user_action(session, locator, timers):
    session.enter(locator)
    first = timers[0]
    session.frame_loaded(1)
    # a timer callback racing with the load is dropped
    first.fire()
    assert session.load_state is LoadState.LOADED
    assert session.reload_nonce == 1


def test_stale_frame_events_are_ignored(session, locator, timers):
    session.enter(locator)
    timers.pending[0].fire()
    assert not session.frame_loaded(1)
    assert session.load_state is LoadState.LOADING
    assert session.frame_loaded(2)


def test_step_reloads_with_new_registration_number(session, locator, timers):
    session.enter(locator)
    session.frame_loaded(1)
    assert session.step("next")
    assert session.locator.registration_number == "22CS008"
    assert session.locator.base_path == BASE
    assert session.load_state is LoadState.LOADING
    assert session.auto_retry_enabled
    assert session.reload_nonce == 2
    assert len(timers.pending) == 1


def test_step_restarts_retry_interval(session, locator, timers):
    session.enter(locator)
    old = timers.pending[0]
    session.step("prev")
    assert old.cancelled
    assert timers.pending == [timers[-1]]
    # the superseded timer no longer bumps the nonce
    old.fire()
    assert session.reload_nonce == 2


def test_step_without_locator_or_digits(session, timers):
    assert not session.step("next")
    session.enter(ResultLocator(BASE, "IV", "ABCDE"))
    assert not session.step("next")
    assert session.reload_nonce == 1


def test_nonce_strictly_increases(session, locator, timers):
    seen = []
    session.enter(locator)
    seen.append(session.reload_nonce)
    timers.pending[0].fire()
    seen.append(session.reload_nonce)
    session.frame_errored(session.reload_nonce)
    timers.pending[0].fire()
    seen.append(session.reload_nonce)
    session.step("next")
    seen.append(session.reload_nonce)
    assert seen == sorted(set(seen))


def test_cancel_retry_disarms(session, locator, timers):
    session.enter(locator)
    session.cancel_retry()
    assert not session.auto_retry_enabled
    assert session.load_state is LoadState.LOADING
    assert not timers.pending


def test_close_tears_down(session, locator, timers):
    session.enter(locator)
    session.close()
    assert not timers.pending
    assert not session.step("next")
    assert not session.frame_loaded(1)


def test_snapshot(session, locator):
    session.enter(locator)
    snap = session.snapshot()
    assert snap["state"] == "loading"
    assert snap["reloadNonce"] == 1
    assert snap["autoRetry"] is True
    assert snap["retryArmed"] is True
    assert snap["locator"] == {"basePath": BASE, "semester": "IV", "regNo": "22CS007"}
    assert snap["effectiveUrl"] == f"{BASE}?Sem=IV&RegNo=22CS007"


def test_retry_failure_is_logged(session, locator, timers, caplog):
    session.enter(locator)
    pending = timers.pending[0]

    def broken_factory(interval, callback):
        raise RuntimeError("no timer threads left")

    session._timer_factory = broken_factory
    with caplog.at_level("ERROR", logger="beu_result.viewer"):
        pending.fire()
    assert session.reload_nonce == 2
    assert any(r.exc_info and "failed" in r.getMessage() for r in caplog.records)
