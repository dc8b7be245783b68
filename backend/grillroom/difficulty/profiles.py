from dataclasses import dataclass


ADVERSARIAL_LEVELS = ["gentle", "moderate", "aggressive", "ruthless"]


@dataclass(frozen=True)
class DifficultyProfile:
    id: str
    label: str
    description: str
    vagueness_weight: float
    missing_weight: float
    confidence_weight: float
    adversarial_level: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "vagueness_weight": self.vagueness_weight,
            "missing_weight": self.missing_weight,
            "confidence_weight": self.confidence_weight,
            "adversarial_level": self.adversarial_level,
        }


LIGHTLY_GRILLED = DifficultyProfile(
    id="lightly-grilled",
    label="Lightly Grilled",
    description="Warm and encouraging. Great for beginners.",
    vagueness_weight=0.25,
    missing_weight=0.30,
    confidence_weight=0.10,
    adversarial_level="gentle",
)

MEDIUM_RARE = DifficultyProfile(
    id="medium-rare",
    label="Medium Rare",
    description="Fair but probing. Expects some depth.",
    vagueness_weight=0.35,
    missing_weight=0.35,
    confidence_weight=0.15,
    adversarial_level="moderate",
)

SLOW_BURNT = DifficultyProfile(
    id="slow-burnt",
    label="Slow Burnt",
    description="Relentless follow-ups. No hand-waving.",
    vagueness_weight=0.40,
    missing_weight=0.40,
    confidence_weight=0.20,
    adversarial_level="aggressive",
)

ROASTED = DifficultyProfile(
    id="roasted",
    label="Roasted",
    description="Brutal. Will find every gap and exploit it.",
    vagueness_weight=0.45,
    missing_weight=0.45,
    confidence_weight=0.25,
    adversarial_level="ruthless",
)

DIFFICULTIES = [LIGHTLY_GRILLED, MEDIUM_RARE, SLOW_BURNT, ROASTED]
DEFAULT_DIFFICULTY = MEDIUM_RARE

_BY_ID = {profile.id: profile for profile in DIFFICULTIES}


def get_difficulty(difficulty_id: str | None) -> DifficultyProfile | None:
    """Resolve a preset id; blank ids fall back to the default preset."""
    key = str(difficulty_id or "").strip().lower()
    if not key:
        return DEFAULT_DIFFICULTY
    return _BY_ID.get(key)


def tone_guidance(adversarial_level: str) -> str:
    level = str(adversarial_level or "").strip().lower()
    if level == "gentle":
        return "Stay warm and encouraging; probe gaps with hints rather than pressure."
    if level == "aggressive":
        return "Relentless follow-ups; refuse hand-waving and ask for mechanisms."
    if level == "ruthless":
        return "Brutal but fair; exploit every gap and demand precise definitions."
    return "Fair but probing; expect some depth before moving on."
