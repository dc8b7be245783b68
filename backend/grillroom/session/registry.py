from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from threading import Lock


@dataclass
class LiveSession:
    session_id: str
    interview: object
    candidate_id: str = ""
    registered_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    active: bool = True


class SessionRegistry:
    """Live interview actors keyed by session id, shared by the WebSocket
    handlers and the REST live view. Released entries linger until swept."""

    def __init__(self):
        self._lock = Lock()
        self._sessions: dict[str, LiveSession] = {}

    def register(self, session_id: str, interview) -> LiveSession:
        entry = LiveSession(
            session_id=session_id,
            interview=interview,
            candidate_id=str(getattr(interview, "candidate_id", "") or ""),
        )
        with self._lock:
            self._sessions[session_id] = entry
        return replace(entry)

    def touch(self, session_id: str) -> None:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is not None:
                entry.updated_at = time.time()

    def release(self, session_id: str) -> None:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is not None:
                entry.active = False
                entry.updated_at = time.time()

    def get(self, session_id: str) -> LiveSession | None:
        with self._lock:
            entry = self._sessions.get(session_id)
            return replace(entry) if entry else None

    def live_view(self, session_id: str) -> dict | None:
        entry = self.get(session_id)
        if entry is None:
            return None
        snapshot = getattr(entry.interview, "snapshot", None)
        payload = snapshot() if callable(snapshot) else {"session_id": session_id}
        payload.update({
            "active": entry.active,
            "registered_at": entry.registered_at,
            "updated_at": entry.updated_at,
        })
        return payload

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for entry in self._sessions.values() if entry.active)

    def active_for_candidate(self, candidate_id: str) -> list[str]:
        with self._lock:
            return [
                entry.session_id
                for entry in self._sessions.values()
                if entry.active and entry.candidate_id == candidate_id
            ]

    async def supersede(self, candidate_id: str, topic_id: str, keep=None) -> int:
        """Disconnect the candidate's live actors on ``topic_id`` other than ``keep``."""
        superseded = 0
        for session_id in self.active_for_candidate(candidate_id):
            entry = self.get(session_id)
            if entry is None or entry.interview is keep:
                continue
            topic = getattr(entry.interview, "topic", None)
            if getattr(topic, "id", None) != topic_id:
                continue
            if await entry.interview.on_transport_error("superseded"):
                superseded += 1
            self.release(session_id)
        return superseded

    def sweep(self, ttl_sec: float) -> int:
        # ttl is clamped to >= 30s
        cutoff = time.time() - max(30.0, float(ttl_sec or 900.0))
        with self._lock:
            expired = [
                session_id
                for session_id, entry in self._sessions.items()
                if not entry.active and entry.updated_at <= cutoff
            ]
            for session_id in expired:
                del self._sessions[session_id]
        return len(expired)


session_registry = SessionRegistry()
