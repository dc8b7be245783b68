from grillroom.analysis.bluff import REFERENCE_WEIGHTS, ScoringWeights, bluff_grade, bluff_meter_label, score_judgment
from grillroom.analysis.coverage import ConceptStatus, KnowledgeMap
from grillroom.analysis.judge import (
    HeuristicResponseJudge,
    JudgeError,
    JudgeMalformedOutputError,
    JudgeQuotaError,
    JudgeRateLimitError,
    JudgeTimeoutError,
    JudgeUnavailableError,
    OpenAIResponseJudge,
    ResponseJudge,
    build_response_judge,
    parse_judgment,
)
from grillroom.analysis.models import JudgeRequest, Judgment, PreviousSummary

__all__ = [
    "REFERENCE_WEIGHTS",
    "ConceptStatus",
    "HeuristicResponseJudge",
    "JudgeError",
    "JudgeMalformedOutputError",
    "JudgeQuotaError",
    "JudgeRateLimitError",
    "JudgeRequest",
    "JudgeTimeoutError",
    "JudgeUnavailableError",
    "Judgment",
    "KnowledgeMap",
    "OpenAIResponseJudge",
    "PreviousSummary",
    "ResponseJudge",
    "ScoringWeights",
    "bluff_grade",
    "bluff_meter_label",
    "build_response_judge",
    "parse_judgment",
    "score_judgment",
]
