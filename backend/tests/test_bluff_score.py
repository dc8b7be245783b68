import pytest

from grillroom.analysis.bluff import (
    REFERENCE_WEIGHTS,
    ScoringWeights,
    bluff_grade,
    bluff_meter_label,
    missing_ratio,
    score_judgment,
)
from grillroom.analysis.models import Judgment
from grillroom.difficulty.profiles import LIGHTLY_GRILLED, ROASTED, SLOW_BURNT


def test_two_of_three_missing_scores_27():
    judgment = Judgment(shallow=("A",), missing=("B", "C"))
    assert score_judgment(judgment, 3) == 27


def test_everything_missing_vague_and_confident_is_100():
    names = tuple(f"c{i}" for i in range(10))
    judgment = Judgment(missing=names, vagueness_score=10, confidence_language_detected=True)
    assert score_judgment(judgment, 10) == 100


def test_nothing_missing_precise_and_humble_is_0():
    judgment = Judgment(clear=("A", "B"), vagueness_score=0, confidence_language_detected=False)
    assert score_judgment(judgment, 2) == 0


def test_denominator_is_topic_size_not_judge_sets():
    # Judge only reported on two of ten concepts; ratio still uses ten.
    judgment = Judgment(clear=("A",), missing=("B",))
    assert score_judgment(judgment, 10) == 4


def test_missing_ratio_clamps_when_judge_lists_unknown_names():
    judgment = Judgment(missing=("A", "B", "C", "not-a-topic-concept"))
    assert missing_ratio(judgment, 3) == 1.0
    assert score_judgment(judgment, 3) == 40


def test_zero_concept_topic_is_rejected():
    with pytest.raises(ValueError):
        score_judgment(Judgment(), 0)


def test_rounds_half_up():
    judgment = Judgment(missing=("x",))
    # 1/16 * 0.4 = 0.025 -> 2.5%
    assert score_judgment(judgment, 16) == 3


def test_vagueness_and_confidence_contributions():
    judgment = Judgment(vagueness_score=5, confidence_language_detected=True)
    assert score_judgment(judgment, 4) == 40


def test_vagueness_outside_scale_is_clamped():
    judgment = Judgment(vagueness_score=25)
    assert score_judgment(judgment, 4) == 40


def test_score_is_pure():
    judgment = Judgment(shallow=("A",), missing=("B", "C"), vagueness_score=3.3)
    assert score_judgment(judgment, 3) == score_judgment(judgment, 3)


def test_difficulty_weights_are_opt_in():
    assert ScoringWeights.from_difficulty(SLOW_BURNT) == REFERENCE_WEIGHTS

    judgment = Judgment(missing=("A", "B"), vagueness_score=6)
    gentle = score_judgment(judgment, 4, ScoringWeights.from_difficulty(LIGHTLY_GRILLED))
    reference = score_judgment(judgment, 4)
    brutal = score_judgment(judgment, 4, ScoringWeights.from_difficulty(ROASTED))
    assert gentle < reference < brutal


def test_amplified_weights_stay_within_range():
    judgment = Judgment(missing=("A",), vagueness_score=10, confidence_language_detected=True)
    assert score_judgment(judgment, 1, ScoringWeights.from_difficulty(ROASTED)) == 100


@pytest.mark.parametrize(
    "score,label",
    [(0, "Genuine"), (19, "Genuine"), (20, "Mostly Clear"), (45, "Getting Vague"), (60, "Likely Bluffing"), (80, "Full Bluff")],
)
def test_bluff_meter_label(score, label):
    assert bluff_meter_label(score) == label


def test_bluff_grade_cut_points():
    assert bluff_grade(5)["label"] == "Expert"
    assert bluff_grade(39)["label"] == "Solid"
    assert bluff_grade(59)["label"] == "Surface"
    assert bluff_grade(79)["label"] == "Bluffer"
    assert bluff_grade(100)["label"] == "Exposed"
