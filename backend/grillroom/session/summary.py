from typing import Any

from grillroom.analysis.bluff import bluff_grade, bluff_meter_label
from grillroom.analysis.coverage import ConceptStatus
from grillroom.session.models import SessionRecord


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except Exception:
        return default


def _avg(values: list[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def build_session_summary(record: SessionRecord) -> dict:
    scores = [_safe_int((item or {}).get("score")) for item in record.bluff_history]
    final_score = _safe_int(record.final_bluff_score)

    counts = {status.value: 0 for status in ConceptStatus}
    for item in record.concept_coverage:
        status = ConceptStatus.parse((item or {}).get("status"))
        counts[status.value] += 1
    total = len(record.concept_coverage)

    # Weakest first, matching how follow-ups are targeted.
    gaps = [
        str(item.get("name"))
        for item in record.concept_coverage
        if ConceptStatus.parse(item.get("status")) == ConceptStatus.MISSING
    ] + [
        str(item.get("name"))
        for item in record.concept_coverage
        if ConceptStatus.parse(item.get("status")) == ConceptStatus.SHALLOW
    ]

    candidate_turns = sum(1 for entry in record.transcript if (entry or {}).get("role") == "user")
    interviewer_turns = sum(1 for entry in record.transcript if (entry or {}).get("role") == "agent")

    return {
        "session_id": record.id,
        "topic_id": record.topic_id,
        "topic_title": record.topic_title,
        "difficulty": record.difficulty,
        "status": record.status,
        "final_bluff_score": final_score,
        "bluff_label": bluff_meter_label(final_score),
        "grade": bluff_grade(final_score),
        "peak_bluff_score": max(scores) if scores else 0,
        "average_bluff_score": round(_avg(scores), 1),
        "analysis_passes": len(scores),
        "coverage": {
            "clear": counts[ConceptStatus.CLEAR.value],
            "shallow": counts[ConceptStatus.SHALLOW.value],
            "missing": counts[ConceptStatus.MISSING.value],
            "total": total,
            "clear_pct": round(100.0 * counts[ConceptStatus.CLEAR.value] / total, 1) if total else 0.0,
        },
        "gaps": gaps,
        "turns": {
            "candidate": candidate_turns,
            "interviewer": interviewer_turns,
        },
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }
