from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from core.state import SessionStatus


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SpeakerRole(str, Enum):
    AGENT = "agent"
    USER = "user"

    @classmethod
    def parse(cls, value: str) -> "SpeakerRole | None":
        text = str(value or "").strip().lower()
        if text in {"agent", "interviewer", "ai"}:
            return cls.AGENT
        if text in {"user", "candidate"}:
            return cls.USER
        return None


@dataclass
class TranscriptEntry:
    role: str
    text: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {"role": self.role, "text": self.text, "timestamp": self.timestamp}


@dataclass
class BluffSample:
    score: int
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "score": int(self.score)}


MUTABLE_FIELDS = {
    "transcript",
    "bluff_history",
    "concept_coverage",
    "final_bluff_score",
    "status",
}


@dataclass
class SessionRecord:
    id: str
    user_id: str
    topic_id: str
    topic_title: str
    difficulty: str = "medium-rare"
    status: str = SessionStatus.IN_PROGRESS.value
    transcript: list[dict] = field(default_factory=list)
    bluff_history: list[dict] = field(default_factory=list)
    concept_coverage: list[dict] = field(default_factory=list)
    final_bluff_score: int = 0
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    job_role_id: str | None = None
    invite_id: str | None = None
    mode: str = "topic"
    revision: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "topic_id": self.topic_id,
            "topic_title": self.topic_title,
            "difficulty": self.difficulty,
            "status": self.status,
            "transcript": [dict(item) for item in self.transcript],
            "bluff_history": [dict(item) for item in self.bluff_history],
            "concept_coverage": [dict(item) for item in self.concept_coverage],
            "final_bluff_score": int(self.final_bluff_score),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "job_role_id": self.job_role_id,
            "invite_id": self.invite_id,
            "mode": self.mode,
            "revision": int(self.revision),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        known = {key: value for key, value in dict(data or {}).items() if key in cls.__dataclass_fields__}
        return cls(**known)
