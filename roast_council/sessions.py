"""In-memory session activity tracking with a capacity ceiling and idle eviction."""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from config.config_loader import SessionConfig
from roast_council.cache import ANONYMOUS_SESSION

logger = logging.getLogger(__name__)


@dataclass
class SessionInfo:
    session_id: str
    started_at: float
    last_activity: float
    request_count: int = 0


class SessionTracker:
    """Tracks which sessions are active. Independent of the response cache's eviction."""

    def __init__(
        self,
        max_sessions: int = 100,
        idle_timeout_min: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_sessions = max_sessions
        self.idle_timeout_sec = idle_timeout_min * 60
        self._clock = clock
        self._sessions: OrderedDict[str, SessionInfo] = OrderedDict()   # least recently active first

    @classmethod
    def from_config(cls, config: SessionConfig) -> "SessionTracker":
        return cls(max_sessions=config.max_sessions, idle_timeout_min=config.idle_timeout_min)

    def touch(self, session_id: str | None) -> SessionInfo:
        """Record a request for a session, admitting it if new."""
        session_id = session_id or ANONYMOUS_SESSION
        now = self._clock()
        info = self._sessions.get(session_id)
        if info is None:
            self._ensure_capacity(now)
            info = SessionInfo(session_id=session_id, started_at=now, last_activity=now)
            self._sessions[session_id] = info
            logger.debug("Tracking new session %s", session_id[:8])
        info.request_count += 1
        info.last_activity = now
        self._sessions.move_to_end(session_id)
        return info

    def get(self, session_id: str) -> SessionInfo | None:
        return self._sessions.get(session_id)

    def evict_idle(self) -> int:
        now = self._clock()
        idle = [sid for sid, info in self._sessions.items() if now - info.last_activity > self.idle_timeout_sec]
        for sid in idle:
            del self._sessions[sid]
        if idle:
            logger.info("Evicted %d idle sessions", len(idle))
        return len(idle)

    def _ensure_capacity(self, now: float) -> None:
        if len(self._sessions) < self.max_sessions:
            return
        self.evict_idle()
        while len(self._sessions) >= self.max_sessions:
            sid, _ = self._sessions.popitem(last=False)
            logger.info("Session capacity reached, dropping least recently active %s", sid[:8])

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
