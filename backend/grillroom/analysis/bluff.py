from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from grillroom.analysis.models import Judgment
from grillroom.difficulty.profiles import DifficultyProfile


@dataclass(frozen=True)
class ScoringWeights:
    vagueness: float = 0.4
    missing: float = 0.4
    confidence: float = 0.2

    @classmethod
    def from_difficulty(cls, profile: DifficultyProfile) -> "ScoringWeights":
        # slow-burnt matches the reference weights; gentler presets forgive, roasted amplifies.
        return cls(
            vagueness=float(profile.vagueness_weight),
            missing=float(profile.missing_weight),
            confidence=float(profile.confidence_weight),
        )


REFERENCE_WEIGHTS = ScoringWeights()


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def missing_ratio(judgment: Judgment, total_concept_count: int) -> float:
    if int(total_concept_count) <= 0:
        raise ValueError("total_concept_count must be positive")
    # Raw judge count: names outside the topic still count here.
    return _clamp(len(judgment.missing) / float(total_concept_count), 0.0, 1.0)


def score_judgment(
    judgment: Judgment,
    total_concept_count: int,
    weights: ScoringWeights = REFERENCE_WEIGHTS,
) -> int:
    """Bluff probability for one judgment, as an integer percentage.

    raw = (vagueness / 10) * w_v + missing_ratio * w_m + confidence_flag * w_c

    The denominator of the missing ratio is the topic's fixed concept count,
    never the size of the judge's own sets. Rounds half up and clamps to
    [0, 100] so difficulty weights summing above 1.0 still stay in range.
    """
    ratio = missing_ratio(judgment, total_concept_count)
    vagueness = _clamp(float(judgment.vagueness_score or 0.0), 0.0, 10.0) / 10.0
    confidence = 1.0 if judgment.confidence_language_detected else 0.0

    raw = vagueness * weights.vagueness + ratio * weights.missing + confidence * weights.confidence
    percent = Decimal(str(round(raw * 100.0, 9))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(_clamp(int(percent), 0, 100))


def bluff_meter_label(score: float) -> str:
    value = float(score or 0.0)
    if value < 20:
        return "Genuine"
    if value < 40:
        return "Mostly Clear"
    if value < 60:
        return "Getting Vague"
    if value < 80:
        return "Likely Bluffing"
    return "Full Bluff"


def bluff_grade(score: float) -> dict:
    value = float(score or 0.0)
    if value < 20:
        return {"label": "Expert", "description": "Deep, authentic understanding"}
    if value < 40:
        return {"label": "Solid", "description": "Good grasp with minor gaps"}
    if value < 60:
        return {"label": "Surface", "description": "Shallow understanding detected"}
    if value < 80:
        return {"label": "Bluffer", "description": "Significant knowledge gaps"}
    return {"label": "Exposed", "description": "Mostly bluffing detected"}
