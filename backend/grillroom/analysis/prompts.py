import json

from grillroom.analysis.models import JudgeRequest
from grillroom.difficulty.profiles import tone_guidance


ANALYZE_RESPONSE_TOOL = {
    "type": "function",
    "function": {
        "name": "analyze_response",
        "description": "Return structured analysis of the candidate's response",
        "parameters": {
            "type": "object",
            "properties": {
                "concepts_mentioned_clearly": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Concepts explained with genuine depth and accuracy",
                },
                "concepts_mentioned_shallowly": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Concepts mentioned but without real understanding",
                },
                "concepts_missing": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Core concepts not addressed at all",
                },
                "vagueness_score": {
                    "type": "number",
                    "description": "0-10 scale. 0 = extremely precise, 10 = entirely vague",
                },
                "confidence_language_detected": {
                    "type": "boolean",
                    "description": "True if the candidate uses confident language like 'obviously', 'basically', 'simply' to mask gaps",
                },
                "depth_score": {
                    "type": "number",
                    "description": "0-10 scale. 0 = surface level, 10 = expert depth",
                },
                "follow_up_question": {
                    "type": "string",
                    "description": "A specific, targeted question that exposes the weakest knowledge gap. Adversarial but fair.",
                },
                "assessment_note": {
                    "type": "string",
                    "description": "Brief internal note about the candidate's understanding level",
                },
            },
            "required": [
                "concepts_mentioned_clearly",
                "concepts_mentioned_shallowly",
                "concepts_missing",
                "vagueness_score",
                "confidence_language_detected",
                "depth_score",
                "follow_up_question",
            ],
            "additionalProperties": False,
        },
    },
}


def build_judge_prompt(request: JudgeRequest) -> str:
    previous = request.previous_summary
    if previous is not None:
        history_block = (
            f"Previous analysis context: the candidate previously had a bluff score of {previous.bluff_score}. "
            f"Previously missing concepts: {json.dumps(list(previous.missing_concepts))}. "
            "Use this to track improvement or deterioration."
        )
    else:
        history_block = "This is the first response from the candidate."

    return f"""
You are an expert knowledge assessor for the topic "{request.topic_title}".

Your job is to analyze a candidate's spoken explanation and detect:
1. Which core concepts they mentioned clearly with depth
2. Which concepts they mentioned but only shallowly
3. Which core concepts are completely missing
4. How vague or precise their language is
5. Whether they use confident-sounding language to mask lack of understanding (bluffing)
6. A targeted follow-up question that exposes the weakest gap

Rules:
- Only use concept names from the list below, spelled exactly as given.
- Judge this answer on its own; do not carry over concepts from earlier answers.

The core concepts for "{request.topic_title}" are: {json.dumps(list(request.core_concepts))}

Adversarial level:
{request.difficulty.adversarial_level}

Follow-up tone:
{tone_guidance(request.difficulty.adversarial_level)}

{history_block}

IMPORTANT: Return your analysis by calling the analyze_response function.
"""
