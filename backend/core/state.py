# backend/core/state.py

from enum import Enum


class SessionPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.COMPLETED, SessionPhase.DISCONNECTED)


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"


class VoiceStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    SPEAKING = "speaking"
