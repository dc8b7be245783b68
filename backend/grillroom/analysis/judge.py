from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Protocol

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator

from core.config import JUDGE_MODEL, OPENAI_API_KEY
from grillroom.analysis.models import JudgeRequest, Judgment
from grillroom.analysis.prompts import ANALYZE_RESPONSE_TOOL, build_judge_prompt
from grillroom.system_metrics import observe_judge_latency_ms
from grillroom.topics.models import normalize_concept_name

logger = logging.getLogger("grillroom.analysis.judge")


class JudgeError(Exception):
    retryable = False


class JudgeRateLimitError(JudgeError):
    retryable = True


class JudgeQuotaError(JudgeError):
    retryable = False


class JudgeTimeoutError(JudgeError):
    retryable = True


class JudgeUnavailableError(JudgeError):
    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class JudgeMalformedOutputError(JudgeError):
    retryable = False


class ResponseJudge(Protocol):
    async def judge(self, request: JudgeRequest) -> Judgment:
        ...


class JudgeResponsePayload(BaseModel):
    concepts_mentioned_clearly: list[str] = Field(default_factory=list)
    concepts_mentioned_shallowly: list[str] = Field(default_factory=list)
    concepts_missing: list[str] = Field(default_factory=list)
    vagueness_score: float
    confidence_language_detected: bool
    depth_score: float = 0.0
    follow_up_question: str = ""
    assessment_note: str | None = None

    @field_validator("vagueness_score", "depth_score")
    @classmethod
    def _clamp_scale(cls, value: float) -> float:
        return max(0.0, min(10.0, float(value)))

    @field_validator("concepts_mentioned_clearly", "concepts_mentioned_shallowly", "concepts_missing")
    @classmethod
    def _strip_names(cls, value: list[str]) -> list[str]:
        return [str(item).strip() for item in value if str(item or "").strip()]

    def to_judgment(self) -> Judgment:
        return Judgment(
            clear=tuple(self.concepts_mentioned_clearly),
            shallow=tuple(self.concepts_mentioned_shallowly),
            missing=tuple(self.concepts_missing),
            vagueness_score=self.vagueness_score,
            confidence_language_detected=self.confidence_language_detected,
            depth_score=self.depth_score,
            follow_up_question=self.follow_up_question.strip(),
            assessment_note=self.assessment_note,
        )


def parse_judgment(raw_arguments: str | dict) -> Judgment:
    if isinstance(raw_arguments, dict):
        data = raw_arguments
    else:
        text = str(raw_arguments or "").strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            start = text.find("{")
            end = text.rfind("}")
            if start == -1 or end <= start:
                raise JudgeMalformedOutputError("judge output contains no JSON object")
            try:
                data = json.loads(text[start:end + 1])
            except json.JSONDecodeError as exc:
                raise JudgeMalformedOutputError(f"judge output is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise JudgeMalformedOutputError("judge output is not a JSON object")
    try:
        return JudgeResponsePayload.model_validate(data).to_judgment()
    except ValidationError as exc:
        raise JudgeMalformedOutputError(f"judge output failed validation: {exc.error_count()} errors") from exc


def classify_judge_failure(exc: BaseException) -> JudgeError:
    if isinstance(exc, JudgeError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, openai.APITimeoutError)):
        return JudgeTimeoutError("judge call timed out")
    if isinstance(exc, openai.RateLimitError):
        if str(getattr(exc, "code", "") or "") == "insufficient_quota":
            return JudgeQuotaError("judge quota exhausted")
        return JudgeRateLimitError("judge rate limited")
    if isinstance(exc, openai.APIStatusError):
        status = int(getattr(exc, "status_code", 0) or 0)
        if status == 402:
            return JudgeQuotaError("judge usage limit reached")
        return JudgeUnavailableError(f"judge returned HTTP {status}", retryable=status >= 500)
    if isinstance(exc, openai.APIConnectionError):
        return JudgeUnavailableError("judge unreachable")
    return JudgeUnavailableError(f"judge failed: {exc.__class__.__name__}", retryable=False)


class OpenAIResponseJudge:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = JUDGE_MODEL,
        timeout_sec: float = 12.0,
        retries: int = 1,
    ):
        self.client = client or AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.model = model
        self.timeout_sec = max(0.1, float(timeout_sec))
        self.retries = max(0, int(retries))

    async def _call_once(self, request: JudgeRequest) -> Judgment:
        response = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": build_judge_prompt(request)},
                    {"role": "user", "content": request.utterance_text},
                ],
                tools=[ANALYZE_RESPONSE_TOOL],
                tool_choice={"type": "function", "function": {"name": "analyze_response"}},
                temperature=0.2,
            ),
            timeout=self.timeout_sec,
        )
        try:
            tool_calls = response.choices[0].message.tool_calls or []
            arguments = tool_calls[0].function.arguments
        except (AttributeError, IndexError, TypeError) as exc:
            raise JudgeMalformedOutputError("no structured output from judge") from exc
        if not arguments:
            raise JudgeMalformedOutputError("no structured output from judge")
        return parse_judgment(arguments)

    async def judge(self, request: JudgeRequest) -> Judgment:
        last_error: JudgeError | None = None
        for attempt in range(self.retries + 1):
            started = time.perf_counter()
            try:
                judgment = await self._call_once(request)
                observe_judge_latency_ms((time.perf_counter() - started) * 1000.0)
                return judgment
            except Exception as exc:
                last_error = classify_judge_failure(exc)
                logger.warning(
                    "judge call failed | attempt=%s kind=%s retryable=%s",
                    attempt + 1,
                    last_error.__class__.__name__,
                    last_error.retryable,
                )
                if not last_error.retryable:
                    break

            if attempt < self.retries:
                await asyncio.sleep(0.35 * (attempt + 1))

        raise last_error or JudgeUnavailableError("judge failed")


_HEDGES = (
    "i think", "kind of", "sort of", "something like", "stuff", "things",
    "etc", "maybe", "probably", "i guess", "whatever", "more or less",
)
_CONFIDENT_FILLER = (
    "obviously", "basically", "simply", "clearly", "of course",
    "everyone knows", "trivially", "it's easy", "it is easy",
)
_EXPLANATION_MARKERS = (
    "because", "which means", "so that", "for example", "for instance",
    "since", "in order to", "this means", "the reason", "trade-off", "tradeoff",
)


def _concept_aliases(concept: str) -> list[str]:
    parts = re.split(r"\s*&\s*|\s+vs\.?\s+|\s+and\s+", normalize_concept_name(concept))
    aliases = [normalize_concept_name(concept)]
    aliases.extend(part for part in parts if len(part) >= 3)
    return aliases


def _count_phrases(text: str, phrases: tuple[str, ...]) -> int:
    return sum(len(re.findall(rf"\b{re.escape(phrase)}\b", text)) for phrase in phrases)


class HeuristicResponseJudge:
    """Deterministic, offline judge for QA runs and local development."""

    async def judge(self, request: JudgeRequest) -> Judgment:
        text = normalize_concept_name(request.utterance_text)
        word_count = len(text.split())
        explained = word_count >= 12 and _count_phrases(text, _EXPLANATION_MARKERS) > 0

        clear, shallow, missing = [], [], []
        for concept in request.core_concepts:
            mentioned = any(re.search(rf"\b{re.escape(alias)}\b", text) for alias in _concept_aliases(concept))
            if not mentioned:
                missing.append(concept)
            elif explained:
                clear.append(concept)
            else:
                shallow.append(concept)

        hedges = _count_phrases(text, _HEDGES)
        vagueness = min(10.0, 2.5 * hedges + (3.0 if word_count < 8 else 0.0) + (2.0 if not (clear or shallow) else 0.0))
        confident = _count_phrases(text, _CONFIDENT_FILLER) > 0

        if shallow:
            follow_up = f"You mentioned {shallow[0]}. Walk me through what actually happens, step by step."
        elif missing:
            follow_up = f"You haven't touched on {missing[0]}. How does it fit into {request.topic_title}?"
        else:
            follow_up = f"What is the hardest failure mode you have seen in {request.topic_title}, and why?"

        return Judgment(
            clear=tuple(clear),
            shallow=tuple(shallow),
            missing=tuple(missing),
            vagueness_score=vagueness,
            confidence_language_detected=confident,
            depth_score=min(10.0, 2.0 * len(clear) + len(shallow)),
            follow_up_question=follow_up,
            assessment_note="heuristic judge",
        )


def build_response_judge(qa_mode: bool = False, timeout_sec: float = 12.0, retries: int = 1) -> ResponseJudge:
    if qa_mode:
        return HeuristicResponseJudge()
    return OpenAIResponseJudge(timeout_sec=timeout_sec, retries=retries)
