"""
Viewer controller: the state machine behind the embedded result frame.

IDLE -> LOADING -> LOADED | ERRORED, and back to LOADING on a retry or a
paging step. While auto-retry is on and the frame has not loaded, a fixed
interval timer keeps reloading the frame by bumping ``reload_nonce``.
"""
from __future__ import annotations
import re
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .deriver import ResultLocator

logger = logging.getLogger(__name__)

_TRAILING_DIGITS = re.compile(r"([0-9]+)$")

NEXT = "next"
PREV = "prev"


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERRORED = "errored"


# a frame error stays eligible for the next retry
RETRYABLE_STATES = (LoadState.LOADING, LoadState.ERRORED)


def step_registration_number(value: str, direction: str) -> Optional[str]:
    """
    Moves the trailing number of a registration number one step.
    '22CS007' -> '22CS008' (next), '...099' -> '...100', '00' stays '00' (prev).
    Returns None when there is no trailing number to move.
    """
    if direction not in (NEXT, PREV):
        raise ValueError(f"unknown direction: {direction!r}")
    m = _TRAILING_DIGITS.search(value or "")
    if not m:
        return None
    digits = m.group(1)
    number = int(digits) + (1 if direction == NEXT else -1)
    number = max(0, number)
    return value[:m.start(1)] + str(number).zfill(len(digits))


class RetryTimer:
    """One-shot cancellable timer on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self._timer = threading.Timer(interval, callback)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()


TimerFactory = Callable[[float, Callable[[], None]], RetryTimer]


class ViewerSession:
    def __init__(self, retry_interval: float = 30.0, timer_factory: TimerFactory = RetryTimer):
        self.retry_interval = retry_interval
        self.locator: Optional[ResultLocator] = None
        self.load_state = LoadState.IDLE
        self.auto_retry_enabled = False
        self.reload_nonce = 0
        self.closed = False
        self._lock = threading.RLock()
        self._timer_factory = timer_factory
        self._timer: Optional[RetryTimer] = None
        self._timer_generation = 0

    # --- transitions ---

    def enter(self, locator: ResultLocator) -> None:
        with self._lock:
            if self.closed:
                return
            self.locator = locator
            self._begin_loading(reason="enter")

    def frame_loaded(self, nonce: Optional[int] = None) -> bool:
        with self._lock:
            if not self._accepts_frame_event(nonce):
                return False
            self.load_state = LoadState.LOADED
            self.auto_retry_enabled = False
            self._sync_timer()
            logger.info("Frame #%s loaded: %s", self.reload_nonce, self.locator.effective_url)
            return True

    def frame_errored(self, nonce: Optional[int] = None) -> bool:
        with self._lock:
            if not self._accepts_frame_event(nonce):
                return False
            self.load_state = LoadState.ERRORED
            self._sync_timer()
            logger.info("Frame #%s failed, next retry in %ss", self.reload_nonce, self.retry_interval)
            return True

    def step(self, direction: str) -> bool:
        with self._lock:
            if self.closed or self.locator is None:
                return False
            new_reg_no = step_registration_number(self.locator.registration_number, direction)
            if new_reg_no is None:
                return False
            self.locator = self.locator.with_registration_number(new_reg_no)
            self._begin_loading(reason=direction)
            return True

    def cancel_retry(self) -> None:
        with self._lock:
            self.auto_retry_enabled = False
            self._sync_timer()

    def close(self) -> None:
        with self._lock:
            self.closed = True
            self._disarm()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "state": self.load_state.value,
                "autoRetry": self.auto_retry_enabled,
                "retryArmed": self.retry_armed,
                "reloadNonce": self.reload_nonce,
                "retryIntervalSec": self.retry_interval,
                "locator": self.locator.to_dict() if self.locator else None,
                "effectiveUrl": self.locator.effective_url if self.locator else None,
            }

    @property
    def retry_armed(self) -> bool:
        return self._timer is not None

    # --- internals ---

    def _begin_loading(self, reason: str) -> None:
        self.load_state = LoadState.LOADING
        self.auto_retry_enabled = True
        self.reload_nonce += 1
        # a user-driven reload restarts the interval
        self._arm()
        logger.debug("Loading #%s (%s): %s", self.reload_nonce, reason, self.locator.effective_url)

    def _accepts_frame_event(self, nonce: Optional[int]) -> bool:
        if self.closed or self.load_state != LoadState.LOADING:
            return False
        if nonce is not None and nonce != self.reload_nonce:
            logger.debug("Ignoring stale frame event #%s (current #%s)", nonce, self.reload_nonce)
            return False
        return True

    def _should_arm(self) -> bool:
        return (not self.closed and self.auto_retry_enabled
                and self.load_state in RETRYABLE_STATES)

    def _sync_timer(self) -> None:
        if not self._should_arm():
            self._disarm()
        elif self._timer is None:
            self._arm()

    def _arm(self) -> None:
        self._disarm()
        self._timer_generation += 1
        generation = self._timer_generation
        self._timer = self._timer_factory(self.retry_interval, lambda: self._on_retry_timer(generation))
        self._timer.start()

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_retry_timer(self, generation: int) -> None:
        with self._lock:
            # superseded by a newer arm or torn down meanwhile
            if generation != self._timer_generation or self._timer is None:
                return
            self._timer = None
            if not self._should_arm():
                return
            try:
                self.load_state = LoadState.LOADING
                self.reload_nonce += 1
                logger.info("Retry #%s: %s", self.reload_nonce, self.locator.effective_url)
                self._arm()
            except Exception:
                logger.exception("Retry #%s failed", self.reload_nonce)
