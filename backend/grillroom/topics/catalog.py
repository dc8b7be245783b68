from __future__ import annotations

import re
import uuid
from threading import Lock

from grillroom.topics.models import Topic


BUILTIN_TOPICS: tuple[Topic, ...] = (
    Topic(
        id="neural-networks",
        title="Neural Networks",
        description="Backpropagation, gradient descent, activation functions, loss optimization, and architectures.",
        core_concepts=(
            "Neurons & Layers",
            "Activation Functions",
            "Backpropagation",
            "Gradient Descent",
            "Loss Functions",
            "Overfitting & Regularization",
            "Learning Rate",
            "Weight Initialization",
            "Batch Normalization",
            "Convolutional Layers",
        ),
    ),
    Topic(
        id="databases",
        title="Databases",
        description="Indexing, normalization, ACID, query optimization, and distributed storage.",
        core_concepts=(
            "ACID Properties",
            "Normalization",
            "Indexing",
            "Query Optimization",
            "Joins",
            "Transactions",
            "CAP Theorem",
            "Sharding",
            "Replication",
            "SQL vs NoSQL",
        ),
    ),
    Topic(
        id="system-design",
        title="System Design",
        description="Load balancing, caching, microservices, consistency models, and scalability patterns.",
        core_concepts=(
            "Load Balancing",
            "Caching Strategies",
            "Microservices",
            "API Gateway",
            "Message Queues",
            "Consistency Models",
            "Database Partitioning",
            "CDN",
            "Rate Limiting",
            "Horizontal vs Vertical Scaling",
        ),
    ),
)


def _slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", str(text or "").strip().lower()).strip("-")
    return slug or "topic"


class TopicCatalog:
    def __init__(self, topics: tuple[Topic, ...] | list[Topic] = BUILTIN_TOPICS):
        self._lock = Lock()
        self._topics: dict[str, Topic] = {}
        for topic in topics:
            self._topics[topic.id] = topic

    def get(self, topic_id: str) -> Topic | None:
        key = str(topic_id or "").strip()
        with self._lock:
            return self._topics.get(key)

    def list(self) -> list[Topic]:
        with self._lock:
            return list(self._topics.values())

    def register_custom(
        self,
        title: str,
        core_concepts: list[str],
        description: str = "",
        job_role_id: str | None = None,
    ) -> Topic:
        # Registered topics are never replaced; a running session may reference them.
        topic_id = f"custom-{_slugify(title)}-{uuid.uuid4().hex[:8]}"
        topic = Topic(
            id=topic_id,
            title=str(title or "").strip(),
            core_concepts=tuple(core_concepts or ()),
            description=str(description or "").strip(),
            job_role_id=job_role_id,
        )
        with self._lock:
            self._topics[topic.id] = topic
        return topic

    def register_job_role(self, job_role: dict) -> list[Topic]:
        """Register every ``custom_topics`` entry of a company job role."""
        role_id = str((job_role or {}).get("id") or "").strip() or None
        company = str((job_role or {}).get("company_name") or "").strip()
        registered = []
        for item in list((job_role or {}).get("custom_topics") or []):
            if not isinstance(item, dict):
                continue
            registered.append(
                self.register_custom(
                    title=str(item.get("title") or ""),
                    core_concepts=list(item.get("core_concepts") or []),
                    description=f"{company} interview topic" if company else "",
                    job_role_id=role_id,
                )
            )
        return registered


topic_catalog = TopicCatalog()
