import pytest

from beu_result import create_app
from beu_result.config import Settings


class ManualTimer:
    """Stands in for RetryTimer; fired by hand instead of by a thread."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def pending(self):
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        self.fired = True
        self.callback()


class TimerLog(list):
    def __call__(self, interval, callback):
        timer = ManualTimer(interval, callback)
        self.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self if t.pending]


@pytest.fixture
def timers():
    return TimerLog()


@pytest.fixture
def settings():
    return Settings(RESULT_SITE_ORIGIN="https://results.example.test", RETRY_INTERVAL_SEC=30.0)


@pytest.fixture
def app(settings, timers):
    app = create_app(settings, timer_factory=timers)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
