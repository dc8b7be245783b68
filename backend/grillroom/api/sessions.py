from fastapi import APIRouter, HTTPException, Query

from grillroom.api import dependencies
from grillroom.api.schemas import (
    CustomTopicRequest,
    JobRoleRequest,
    SessionSummaryResponse,
    TopicResponse,
)
from grillroom.difficulty.profiles import DEFAULT_DIFFICULTY, DIFFICULTIES
from grillroom.session.registry import session_registry
from grillroom.session.summary import build_session_summary

router = APIRouter(prefix="/api")


@router.get("/topics", response_model=list[TopicResponse])
def list_topics(job_role_id: str | None = None):
    topics = dependencies.get_provider().get_topic_catalog().list()
    if job_role_id:
        topics = [topic for topic in topics if topic.job_role_id == job_role_id]
    return [topic.to_dict() for topic in topics]


@router.get("/topics/{topic_id}", response_model=TopicResponse)
def get_topic(topic_id: str):
    topic = dependencies.get_provider().get_topic_catalog().get(topic_id)
    if topic is None:
        raise HTTPException(status_code=404, detail="Topic not found")
    return topic.to_dict()


@router.post("/topics", response_model=TopicResponse, status_code=201)
def create_topic(req: CustomTopicRequest):
    try:
        topic = dependencies.get_provider().get_topic_catalog().register_custom(
            title=req.title,
            core_concepts=req.core_concepts,
            description=req.description,
            job_role_id=req.job_role_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return topic.to_dict()


@router.post("/job-roles", response_model=list[TopicResponse], status_code=201)
def register_job_role(req: JobRoleRequest):
    try:
        topics = dependencies.get_provider().get_topic_catalog().register_job_role(req.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return [topic.to_dict() for topic in topics]


@router.get("/difficulties")
def list_difficulties():
    return {
        "default": DEFAULT_DIFFICULTY.id,
        "difficulties": [profile.to_dict() for profile in DIFFICULTIES],
    }


@router.get("/sessions/{session_id}")
async def get_session_record(session_id: str):
    record = await dependencies.get_provider().get_session_store().get_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return record.to_dict()


@router.get("/sessions/{session_id}/summary", response_model=SessionSummaryResponse)
async def get_session_summary(session_id: str):
    record = await dependencies.get_provider().get_session_store().get_session(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return build_session_summary(record)


@router.get("/sessions/{session_id}/live")
def get_live_session(session_id: str):
    payload = session_registry.live_view(session_id)
    if payload is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return payload


@router.get("/candidates/{candidate_id}/sessions")
async def list_candidate_sessions(candidate_id: str, limit: int = Query(default=50, ge=1, le=200)):
    records = await dependencies.get_provider().get_session_store().list_candidate_sessions(candidate_id, limit=limit)
    return {
        "candidate_id": candidate_id,
        "live_session_ids": session_registry.active_for_candidate(candidate_id),
        "sessions": [build_session_summary(record) for record in records],
    }
