from grillroom.difficulty.profiles import (
    ADVERSARIAL_LEVELS,
    DEFAULT_DIFFICULTY,
    DIFFICULTIES,
    DifficultyProfile,
    get_difficulty,
    tone_guidance,
)

__all__ = [
    "ADVERSARIAL_LEVELS",
    "DEFAULT_DIFFICULTY",
    "DIFFICULTIES",
    "DifficultyProfile",
    "get_difficulty",
    "tone_guidance",
]
