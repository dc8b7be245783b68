import asyncio
import os
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Module constants are read at import time.
os.environ.setdefault("QA_MODE", "true")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from grillroom.analysis.models import Judgment  # noqa: E402
from grillroom.session.store import LocalSessionStore  # noqa: E402
from grillroom.topics.models import Topic  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("USE_REDIS_SESSION_STORE", raising=False)


@pytest.fixture
def abc_topic() -> Topic:
    return Topic(id="abc", title="Alphabet", core_concepts=("A", "B", "C"))


@pytest.fixture
def store() -> LocalSessionStore:
    return LocalSessionStore()


class ScriptedJudge:
    """Returns queued judgments in order; an Exception entry is raised instead."""

    def __init__(self, results=None, delay_sec: float = 0.0):
        self.results = list(results or [])
        self.delay_sec = delay_sec
        self.requests = []

    async def judge(self, request):
        self.requests.append(request)
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        result = self.results.pop(0) if self.results else Judgment()
        if isinstance(result, Exception):
            raise result
        return result


class RecordingTransport:
    def __init__(self):
        self.instructions: list[str] = []
        self.published: list[dict] = []

    async def send_contextual_update(self, instruction: str) -> None:
        self.instructions.append(instruction)

    async def publish(self, payload: dict) -> None:
        self.published.append(payload)

    def of_type(self, message_type: str) -> list[dict]:
        return [item for item in self.published if item.get("type") == message_type]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def scripted_judge():
    return ScriptedJudge
