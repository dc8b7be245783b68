from __future__ import annotations

from dataclasses import dataclass, field


def normalize_concept_name(name: str) -> str:
    """Key used to match concept names across the topic and judge output."""
    return " ".join(str(name or "").split()).casefold()


@dataclass(frozen=True)
class Topic:
    id: str
    title: str
    core_concepts: tuple[str, ...]
    description: str = ""
    job_role_id: str | None = field(default=None, compare=False)

    def __post_init__(self):
        if not str(self.id or "").strip():
            raise ValueError("topic id is required")
        if not str(self.title or "").strip():
            raise ValueError("topic title is required")

        concepts = tuple(" ".join(str(name or "").split()) for name in self.core_concepts)
        if not concepts:
            raise ValueError(f"topic {self.id} has no core concepts")

        seen: set[str] = set()
        for name in concepts:
            key = normalize_concept_name(name)
            if not key:
                raise ValueError(f"topic {self.id} has an empty concept name")
            if key in seen:
                raise ValueError(f"topic {self.id} repeats concept {name!r}")
            seen.add(key)

        object.__setattr__(self, "core_concepts", concepts)

    @property
    def concept_count(self) -> int:
        return len(self.core_concepts)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "core_concepts": list(self.core_concepts),
            "concept_count": self.concept_count,
            "job_role_id": self.job_role_id,
        }
