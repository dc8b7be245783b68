from pydantic import BaseModel, Field


class CustomTopicRequest(BaseModel):
    title: str = Field(min_length=1)
    core_concepts: list[str] = Field(min_length=1)
    description: str = ""
    job_role_id: str | None = None


class JobRoleTopic(BaseModel):
    title: str = Field(min_length=1)
    core_concepts: list[str] = Field(min_length=1)


class JobRoleRequest(BaseModel):
    id: str = Field(min_length=1)
    title: str = ""
    company_name: str = ""
    custom_topics: list[JobRoleTopic] = Field(default_factory=list)


class TopicResponse(BaseModel):
    id: str
    title: str
    description: str = ""
    core_concepts: list[str]
    concept_count: int
    job_role_id: str | None = None


class CoverageCounts(BaseModel):
    clear: int
    shallow: int
    missing: int
    total: int
    clear_pct: float


class SessionSummaryResponse(BaseModel):
    session_id: str
    topic_id: str
    topic_title: str
    difficulty: str
    status: str
    final_bluff_score: int
    bluff_label: str
    grade: dict[str, str]
    peak_bluff_score: int
    average_bluff_score: float
    analysis_passes: int
    coverage: CoverageCounts
    gaps: list[str]
    turns: dict[str, int]
    created_at: str
    updated_at: str
