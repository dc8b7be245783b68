from dataclasses import dataclass, field
from typing import Optional

from grillroom.difficulty.profiles import DifficultyProfile


@dataclass
class Judgment:
    # --- Concept sets (names as the judge returned them, not cumulative) ---
    clear: tuple[str, ...] = ()
    shallow: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()

    # --- Language signals ---
    vagueness_score: float = 0.0
    confidence_language_detected: bool = False
    depth_score: float = 0.0

    # --- Follow-up ---
    follow_up_question: str = ""
    assessment_note: Optional[str] = None


@dataclass
class PreviousSummary:
    bluff_score: int
    missing_concepts: list[str] = field(default_factory=list)


@dataclass
class JudgeRequest:
    utterance_text: str
    topic_title: str
    core_concepts: list[str]
    difficulty: DifficultyProfile
    previous_summary: Optional[PreviousSummary] = None
