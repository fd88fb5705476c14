from __future__ import annotations
import time
import uuid
import logging
import threading
from typing import Optional

from .deriver import ResultLocator
from .viewer import RetryTimer, TimerFactory, ViewerSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-memory viewer sessions, one per open viewer tab.
    Tabs close their session on page hide; sessions that stop polling are swept.
    """

    def __init__(self, retry_interval: float = 30.0, idle_timeout: float = 900.0,
                 timer_factory: TimerFactory = RetryTimer, clock=time.monotonic):
        self.retry_interval = retry_interval
        self.idle_timeout = idle_timeout
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, tuple[ViewerSession, float]] = {}

    def open(self, locator: ResultLocator) -> tuple[str, ViewerSession]:
        self.sweep()
        session = ViewerSession(self.retry_interval, self._timer_factory)
        session.enter(locator)
        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = (session, self._clock())
        logger.info("Viewer session %s opened for %s", session_id, locator.effective_url)
        return session_id, session

    def get(self, session_id: str) -> Optional[ViewerSession]:
        self.sweep()
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            session = entry[0]
            self._sessions[session_id] = (session, self._clock())
        return session

    def close(self, session_id: str) -> bool:
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        entry[0].close()
        logger.info("Viewer session %s closed", session_id)
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            stale = [sid for sid, (_, seen) in self._sessions.items()
                     if now - seen > self.idle_timeout]
            expired = [self._sessions.pop(sid)[0] for sid in stale]
        for session in expired:
            session.close()
        if expired:
            logger.info("Swept %d idle viewer session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
