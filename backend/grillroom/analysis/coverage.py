from __future__ import annotations

from enum import Enum
from typing import Iterable

from grillroom.analysis.models import Judgment
from grillroom.topics.models import normalize_concept_name


class ConceptStatus(str, Enum):
    MISSING = "missing"
    SHALLOW = "shallow"
    CLEAR = "clear"

    @property
    def strength(self) -> int:
        return _STRENGTH[self]

    @classmethod
    def parse(cls, value) -> "ConceptStatus":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.MISSING


_STRENGTH = {
    ConceptStatus.MISSING: 0,
    ConceptStatus.SHALLOW: 1,
    ConceptStatus.CLEAR: 2,
}


def _name_keys(names: Iterable[str]) -> set[str]:
    return {normalize_concept_name(name) for name in names or () if normalize_concept_name(name)}


class KnowledgeMap:
    """Per-concept coverage for one session.

    Statuses only ever move up (missing -> shallow -> clear). A concept the
    judge does not mention, or lists as missing, keeps whatever it had.
    Judge names that match no topic concept are ignored.
    """

    def __init__(self, concepts: Iterable[str]):
        self._order: list[str] = []
        self._names: dict[str, str] = {}
        self._status: dict[str, ConceptStatus] = {}
        for name in concepts:
            key = normalize_concept_name(name)
            if not key or key in self._names:
                continue
            self._order.append(key)
            self._names[key] = " ".join(str(name).split())
            self._status[key] = ConceptStatus.MISSING

    def __len__(self) -> int:
        return len(self._order)

    def status(self, name: str) -> ConceptStatus | None:
        return self._status.get(normalize_concept_name(name))

    def apply(self, judgment: Judgment) -> list[dict]:
        clear_keys = _name_keys(judgment.clear)
        shallow_keys = _name_keys(judgment.shallow)

        changes = []
        for key in self._order:
            current = self._status[key]
            if key in clear_keys:
                target = ConceptStatus.CLEAR
            elif key in shallow_keys:
                target = ConceptStatus.CLEAR if current == ConceptStatus.CLEAR else ConceptStatus.SHALLOW
            else:
                continue

            if target.strength > current.strength:
                self._status[key] = target
                changes.append({
                    "name": self._names[key],
                    "from": current.value,
                    "to": target.value,
                })
        return changes

    def restore(self, coverage: Iterable[dict]) -> None:
        for item in coverage or ():
            if not isinstance(item, dict):
                continue
            key = normalize_concept_name(item.get("name"))
            if key not in self._status:
                continue
            restored = ConceptStatus.parse(item.get("status"))
            if restored.strength > self._status[key].strength:
                self._status[key] = restored

    def snapshot(self) -> list[dict]:
        return [
            {"name": self._names[key], "status": self._status[key].value}
            for key in self._order
        ]

    def counts(self) -> dict:
        result = {status.value: 0 for status in ConceptStatus}
        for key in self._order:
            result[self._status[key].value] += 1
        result["total"] = len(self._order)
        return result

    def names_with(self, status: ConceptStatus) -> list[str]:
        return [self._names[key] for key in self._order if self._status[key] == status]

    def missing(self) -> list[str]:
        return self.names_with(ConceptStatus.MISSING)

    def weakest(self, limit: int = 3) -> list[str]:
        ranked = self.missing() + self.names_with(ConceptStatus.SHALLOW)
        return ranked[: max(0, int(limit))]
