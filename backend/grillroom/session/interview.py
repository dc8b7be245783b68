from __future__ import annotations

import asyncio
import logging
import os
from typing import Protocol

from core.config import env_flag
from core.logger import log_event
from core.state import SessionPhase, SessionStatus, VoiceStatus
from grillroom.analysis.bluff import REFERENCE_WEIGHTS, ScoringWeights, bluff_meter_label, score_judgment
from grillroom.analysis.coverage import KnowledgeMap
from grillroom.analysis.judge import ResponseJudge, classify_judge_failure
from grillroom.analysis.models import JudgeRequest, PreviousSummary
from grillroom.difficulty.profiles import DEFAULT_DIFFICULTY, DifficultyProfile, tone_guidance
from grillroom.session.controller import SessionController
from grillroom.session.debouncer import ANALYSIS_QUIET_PERIOD_SEC, UtteranceDebouncer
from grillroom.session.invites import InviteNotifier
from grillroom.session.models import BluffSample, SpeakerRole, TranscriptEntry
from grillroom.session.store import SessionStore
from grillroom.system_metrics import decrement_metric, increment_metric, record_session_end
from grillroom.topics.models import Topic

logger = logging.getLogger("grillroom.session.interview")

ADVERSARIAL_THRESHOLD = max(0, min(100, int(os.getenv("ADVERSARIAL_THRESHOLD", "60"))))
BLUFF_DIFFICULTY_WEIGHTING = env_flag("BLUFF_DIFFICULTY_WEIGHTING")


class SessionTransport(Protocol):
    async def send_contextual_update(self, instruction: str) -> None:
        ...

    async def publish(self, payload: dict) -> None:
        ...


def build_followup_instruction(
    follow_up_question: str,
    bluff_score: int,
    difficulty: DifficultyProfile,
    weakest_concepts: list[str] | None = None,
    adversarial_threshold: int = ADVERSARIAL_THRESHOLD,
) -> str:
    if int(bluff_score) >= int(adversarial_threshold):
        tone = (
            f"The candidate appears to be bluffing (bluff score {bluff_score}/100). "
            "Press hard: challenge the claim directly and ask for concrete specifics."
        )
    else:
        tone = (
            f"The candidate seems reasonably grounded (bluff score {bluff_score}/100). "
            "Keep probing fairly and ask them to go one level deeper."
        )

    gaps = ""
    if weakest_concepts:
        gaps = f"\nWeakest areas so far: {', '.join(weakest_concepts)}."

    return (
        f"{tone}\n"
        f"Interview intensity: {difficulty.adversarial_level}. {tone_guidance(difficulty.adversarial_level)}"
        f"{gaps}\n"
        f"Ask this next, in your own words: {follow_up_question.strip()}"
    )


class InterviewSession:
    """One live interview: owns the debouncer, the knowledge map and the
    bluff history, and is the only writer of its session record.

    Phases run idle -> connecting -> active -> completed | disconnected.
    Judge calls are serialised per session; results that arrive after the
    session left ``active`` are discarded.
    """

    def __init__(
        self,
        candidate_id: str,
        topic: Topic,
        store: SessionStore,
        judge: ResponseJudge,
        difficulty: DifficultyProfile = DEFAULT_DIFFICULTY,
        transport: SessionTransport | None = None,
        invite_notifier: InviteNotifier | None = None,
        job_role_id: str | None = None,
        invite_id: str | None = None,
        quiet_period_sec: float = ANALYSIS_QUIET_PERIOD_SEC,
        use_difficulty_weights: bool = BLUFF_DIFFICULTY_WEIGHTING,
        adversarial_threshold: int = ADVERSARIAL_THRESHOLD,
    ):
        self.candidate_id = str(candidate_id)
        self.topic = topic
        self.difficulty = difficulty
        self.store = store
        self.judge = judge
        self.transport = transport
        self.invite_notifier = invite_notifier
        self.job_role_id = job_role_id
        self.invite_id = invite_id
        self.weights = ScoringWeights.from_difficulty(difficulty) if use_difficulty_weights else REFERENCE_WEIGHTS
        self.adversarial_threshold = int(adversarial_threshold)

        self.phase = SessionPhase.IDLE
        self.voice_status = VoiceStatus.IDLE
        self.session_id: str | None = None
        self.controller = SessionController()
        self.debouncer = UtteranceDebouncer(self._on_debounced, quiet_period_sec=quiet_period_sec)
        self._reset_state()

        self._analysis_lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()
        self._writes: list[asyncio.Task] = []
        self._revision = 0

    def _reset_state(self) -> None:
        self.knowledge_map = KnowledgeMap(self.topic.core_concepts)
        self.transcript: list[TranscriptEntry] = []
        self.bluff_history: list[BluffSample] = []
        self.final_bluff_score = 0
        self.last_missing: list[str] = []

    def _log_event(self, event: str, **fields) -> None:
        log_event("interview", event, self.session_id or "", topic_id=self.topic.id, **fields)

    # ---- lifecycle -------------------------------------------------------

    async def start(self) -> str | None:
        if self.phase != SessionPhase.IDLE:
            logger.info("start ignored | session_id=%s phase=%s", self.session_id, self.phase.value)
            return self.session_id

        self.phase = SessionPhase.CONNECTING
        self._reset_state()
        await self._set_voice_status(VoiceStatus.CONNECTING)

        try:
            marked = await self.store.mark_stale_active_sessions_disconnected(self.candidate_id, self.topic.id)
            if marked:
                self._log_event("stale_sessions_disconnected", count=marked)
        except Exception as exc:
            increment_metric("persistence_failures")
            logger.warning("stale session sweep failed | candidate_id=%s err=%s", self.candidate_id, exc)

        try:
            self.session_id = await self.store.create_session(
                self.candidate_id,
                self.topic.id,
                self.topic.title,
                self.knowledge_map.snapshot(),
                difficulty=self.difficulty.id,
                job_role_id=self.job_role_id,
                invite_id=self.invite_id,
                mode="job_role" if self.job_role_id else "topic",
            )
        except Exception as exc:
            increment_metric("persistence_failures")
            logger.warning("create_session failed | candidate_id=%s err=%s", self.candidate_id, exc)
            self.session_id = None

        self._revision = 0
        increment_metric("sessions_started")
        increment_metric("sessions_active")
        self._log_event("session_created", difficulty=self.difficulty.id, persisted=self.session_id is not None)
        return self.session_id

    async def on_connected(self) -> bool:
        if self.phase != SessionPhase.CONNECTING:
            logger.info("on_connected ignored | session_id=%s phase=%s", self.session_id, self.phase.value)
            return False
        self.phase = SessionPhase.ACTIVE
        self._log_event("session_active")
        await self._set_voice_status(VoiceStatus.LISTENING)
        return True

    async def set_speaking(self, speaking: bool) -> None:
        if self.phase != SessionPhase.ACTIVE:
            return
        await self._set_voice_status(VoiceStatus.SPEAKING if speaking else VoiceStatus.LISTENING)

    async def end(self) -> bool:
        if self.phase != SessionPhase.ACTIVE:
            logger.info("end ignored | session_id=%s phase=%s", self.session_id, self.phase.value)
            return False

        await self._finish(SessionPhase.COMPLETED, reason="end")
        if self.invite_id and self.invite_notifier is not None:
            try:
                await self.invite_notifier.mark_completed(self.invite_id)
                self._log_event("invite_completed", invite_id=self.invite_id)
            except Exception as exc:
                logger.warning("invite completion failed | invite_id=%s err=%s", self.invite_id, exc)
        return True

    async def on_transport_error(self, reason: str = "transport_error") -> bool:
        if self.phase == SessionPhase.CONNECTING:
            await self._abort_connect(reason)
            return True
        if self.phase != SessionPhase.ACTIVE:
            logger.info("transport error ignored | session_id=%s phase=%s", self.session_id, self.phase.value)
            return False
        await self._finish(SessionPhase.DISCONNECTED, reason=reason)
        return True

    async def on_client_gone(self) -> bool:
        return await self.on_transport_error("client_gone")

    async def close(self) -> None:
        if self.phase in (SessionPhase.CONNECTING, SessionPhase.ACTIVE):
            await self.on_client_gone()
        self.debouncer.cancel()
        await self.controller.stop()
        await self._drain_writes()

    async def _abort_connect(self, reason: str) -> None:
        self._log_event("connect_failed", reason=reason)
        self.phase = SessionPhase.IDLE
        self.debouncer.cancel()
        self._schedule_write({"status": SessionStatus.DISCONNECTED.value})
        await self._drain_writes()
        decrement_metric("sessions_active")
        await self._set_voice_status(VoiceStatus.IDLE)
        await self._publish({"type": "error", "message": "Connection failed. Please try again."})

    async def _finish(self, phase: SessionPhase, reason: str) -> None:
        self.phase = phase
        discarded = self.debouncer.cancel()
        if discarded:
            increment_metric("analysis_discarded")
            self._log_event("pending_buffer_discarded", text=discarded)

        status = SessionStatus.COMPLETED if phase == SessionPhase.COMPLETED else SessionStatus.DISCONNECTED
        self._schedule_write({
            "transcript": [entry.to_dict() for entry in self.transcript],
            "bluff_history": [sample.to_dict() for sample in self.bluff_history],
            "concept_coverage": self.knowledge_map.snapshot(),
            "final_bluff_score": self.final_bluff_score,
            "status": status.value,
        })
        await self._drain_writes()

        decrement_metric("sessions_active")
        record_session_end(status.value)
        self._log_event("session_ended", status=status.value, reason=reason, analyses=len(self.bluff_history))
        await self._set_voice_status(VoiceStatus.IDLE)
        await self._publish({"type": "session_ended", "session_id": self.session_id, "status": status.value})

    # ---- utterances and analysis ----------------------------------------

    async def on_utterance(self, role: str, text: str) -> bool:
        if self.phase != SessionPhase.ACTIVE:
            logger.info("utterance ignored | session_id=%s phase=%s", self.session_id, self.phase.value)
            return False

        speaker = SpeakerRole.parse(role)
        if speaker is None:
            logger.warning("utterance with unknown role ignored | session_id=%s role=%s", self.session_id, role)
            return False

        cleaned = " ".join(str(text or "").split())
        if not cleaned:
            return False

        self.transcript.append(TranscriptEntry(role=speaker.value, text=cleaned))
        self._schedule_write({"transcript": [entry.to_dict() for entry in self.transcript]})

        if speaker == SpeakerRole.USER:
            self.debouncer.push(cleaned)
        return True

    async def _on_debounced(self, text: str) -> None:
        if self.phase != SessionPhase.ACTIVE:
            return
        self.controller.create_task(self.analyze(text))

    def _previous_summary(self) -> PreviousSummary | None:
        if not self.bluff_history:
            return None
        return PreviousSummary(bluff_score=self.final_bluff_score, missing_concepts=list(self.last_missing))

    async def analyze(self, text: str) -> dict | None:
        """Runs one judge pass over a debounced unit and applies it."""
        async with self._analysis_lock:
            if self.phase != SessionPhase.ACTIVE:
                increment_metric("analysis_discarded")
                return None

            request = JudgeRequest(
                utterance_text=text,
                topic_title=self.topic.title,
                core_concepts=list(self.topic.core_concepts),
                difficulty=self.difficulty,
                previous_summary=self._previous_summary(),
            )
            try:
                judgment = await self.judge.judge(request)
            except Exception as exc:
                failure = classify_judge_failure(exc)
                increment_metric("judge_failures")
                if failure.retryable:
                    increment_metric("judge_failures_retryable")
                self._log_event(
                    "judge_failed",
                    kind=failure.__class__.__name__,
                    retryable=failure.retryable,
                    error=str(failure),
                )
                return None

            if self.phase != SessionPhase.ACTIVE:
                increment_metric("analysis_discarded")
                self._log_event("judgment_discarded", phase=self.phase.value)
                return None

            score = score_judgment(judgment, len(self.knowledge_map), self.weights)
            changed = self.knowledge_map.apply(judgment)
            self.bluff_history.append(BluffSample(score=score))
            self.final_bluff_score = score
            self.last_missing = list(judgment.missing)
            increment_metric("analysis_passes")

            self._schedule_write({
                "bluff_history": [sample.to_dict() for sample in self.bluff_history],
                "concept_coverage": self.knowledge_map.snapshot(),
                "final_bluff_score": score,
            })

            payload = {
                "type": "analysis",
                "session_id": self.session_id,
                "bluff_score": score,
                "bluff_label": bluff_meter_label(score),
                "concept_coverage": self.knowledge_map.snapshot(),
                "changed": changed,
                "follow_up_question": judgment.follow_up_question,
            }
            self._log_event(
                "analysis_applied",
                bluff_score=score,
                changed=len(changed),
                vagueness=judgment.vagueness_score,
                confidence_language=judgment.confidence_language_detected,
            )
            await self._publish(payload)
            await self._inject_followup(judgment.follow_up_question, score)
            return payload

    async def _inject_followup(self, follow_up_question: str, score: int) -> None:
        question = str(follow_up_question or "").strip()
        if not question or self.transport is None:
            return
        if self.phase != SessionPhase.ACTIVE:
            increment_metric("followups_dropped")
            return

        instruction = build_followup_instruction(
            question,
            score,
            self.difficulty,
            weakest_concepts=self.knowledge_map.weakest(),
            adversarial_threshold=self.adversarial_threshold,
        )
        try:
            await self.transport.send_contextual_update(instruction)
            increment_metric("followups_injected")
            self._log_event("followup_injected", instruction=instruction, bluff_score=score)
        except Exception as exc:
            increment_metric("followups_dropped")
            logger.warning("follow-up injection failed | session_id=%s err=%s", self.session_id, exc)

    # ---- persistence -----------------------------------------------------

    def _schedule_write(self, fields: dict) -> None:
        if self.session_id is None:
            return
        self._revision += 1
        task = asyncio.create_task(self._write(self.session_id, dict(fields), self._revision))
        self._writes = [item for item in self._writes if not item.done()]
        self._writes.append(task)

    async def _write(self, session_id: str, fields: dict, revision: int) -> None:
        async with self._persist_lock:
            try:
                applied = await self.store.update_session(session_id, fields, revision=revision)
            except Exception as exc:
                increment_metric("persistence_failures")
                logger.warning(
                    "session write failed | session_id=%s revision=%s err=%s",
                    session_id,
                    revision,
                    exc,
                )
                return
            if not applied:
                logger.warning("session write not applied | session_id=%s revision=%s", session_id, revision)

    async def _drain_writes(self) -> None:
        pending = [task for task in self._writes if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._writes = []

    async def flush(self) -> None:
        await self._drain_writes()

    # ---- outbound --------------------------------------------------------

    async def _publish(self, payload: dict) -> None:
        if self.transport is None:
            return
        try:
            await self.transport.publish(payload)
        except Exception as exc:
            logger.warning("publish failed | session_id=%s type=%s err=%s", self.session_id, payload.get("type"), exc)

    async def _set_voice_status(self, status: VoiceStatus) -> None:
        if status == self.voice_status:
            return
        self.voice_status = status
        await self._publish({"type": "status", "session_id": self.session_id, "voice_status": status.value})

    def snapshot(self) -> dict:
        counts = self.knowledge_map.counts()
        return {
            "session_id": self.session_id,
            "candidate_id": self.candidate_id,
            "topic_id": self.topic.id,
            "topic_title": self.topic.title,
            "difficulty": self.difficulty.id,
            "phase": self.phase.value,
            "voice_status": self.voice_status.value,
            "bluff_score": self.final_bluff_score,
            "bluff_label": bluff_meter_label(self.final_bluff_score),
            "bluff_history": [sample.to_dict() for sample in self.bluff_history],
            "concept_coverage": self.knowledge_map.snapshot(),
            "coverage_counts": counts,
            "transcript_turns": len(self.transcript),
            "buffering": self.debouncer.state == UtteranceDebouncer.BUFFERING,
        }
