"""
Agent liveness derived from heartbeat pings
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional


class LivenessTracker:
    def __init__(self, offline_after_seconds: float = 20, clock: Callable[[], float] = time.time):
        self.offline_after_seconds = offline_after_seconds
        self._clock = clock
        self.last_ping: Optional[float] = None
        self.last_agent_id: Optional[str] = None

    def ping(self, agent_id: Optional[str] = None) -> float:
        self.last_ping = self._clock()
        if agent_id:
            self.last_agent_id = agent_id
        return self.last_ping

    def is_online(self, now: Optional[float] = None) -> bool:
        if self.last_ping is None:
            return False
        now = self._clock() if now is None else now
        return now - self.last_ping < self.offline_after_seconds

    def last_ping_iso(self) -> Optional[str]:
        if self.last_ping is None:
            return None
        return datetime.fromtimestamp(self.last_ping, tz=timezone.utc).isoformat()
