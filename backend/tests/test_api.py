import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from grillroom.analysis.judge import HeuristicResponseJudge
from grillroom.api import dependencies
from grillroom.api.ws_interview import interview_ws, websocket_send_locks
from grillroom.main import app
from grillroom.session.invites import LocalInviteNotifier
from grillroom.session.registry import session_registry
from grillroom.session.store import LocalSessionStore
from grillroom.topics.catalog import TopicCatalog


class _TestProvider(dependencies.DependencyProvider):
    quiet_period_sec = 0.2

    def __init__(self):
        self.judge = HeuristicResponseJudge()
        self.store = LocalSessionStore()
        self.notifier = LocalInviteNotifier()
        self.catalog = TopicCatalog()

    def create_judge(self):
        return self.judge

    def get_session_store(self):
        return self.store

    def get_invite_notifier(self):
        return self.notifier

    def get_topic_catalog(self):
        return self.catalog


@pytest.fixture
def provider():
    test_provider = _TestProvider()
    previous = dependencies.set_provider(test_provider)
    yield test_provider
    dependencies.set_provider(previous)


@pytest.fixture
def client(provider) -> TestClient:
    return TestClient(app)


def _receive_until(ws, message_type: str, limit: int = 20) -> dict:
    for _ in range(limit):
        payload = ws.receive_json()
        if payload.get("type") == message_type:
            return payload
    raise AssertionError(f"no {message_type} message received")


def test_healthz(client: TestClient):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_topics_and_difficulties(client: TestClient):
    topics = client.get("/api/topics").json()
    assert {item["id"] for item in topics} == {"neural-networks", "databases", "system-design"}
    assert all(item["concept_count"] == 10 for item in topics)

    assert client.get("/api/topics/databases").json()["title"] == "Databases"
    assert client.get("/api/topics/nope").status_code == 404

    difficulties = client.get("/api/difficulties").json()
    assert difficulties["default"] == "medium-rare"
    assert [item["id"] for item in difficulties["difficulties"]] == [
        "lightly-grilled",
        "medium-rare",
        "slow-burnt",
        "roasted",
    ]


def test_custom_topic_registration(client: TestClient):
    resp = client.post("/api/topics", json={"title": "Kafka", "core_concepts": ["Partitions", "Offsets"], "job_role_id": "r1"})
    assert resp.status_code == 201
    topic = resp.json()
    assert topic["id"].startswith("custom-kafka-")
    assert client.get(f"/api/topics/{topic['id']}").json()["core_concepts"] == ["Partitions", "Offsets"]
    assert [item["id"] for item in client.get("/api/topics", params={"job_role_id": "r1"}).json()] == [topic["id"]]

    assert client.post("/api/topics", json={"title": "Dupes", "core_concepts": ["A", "a"]}).status_code == 422
    assert client.post("/api/topics", json={"title": "Empty", "core_concepts": []}).status_code == 422


def test_job_role_registration(client: TestClient):
    resp = client.post("/api/job-roles", json={
        "id": "role-7",
        "company_name": "Acme",
        "custom_topics": [{"title": "Payments", "core_concepts": ["Idempotency", "Ledgers"]}],
    })
    assert resp.status_code == 201
    topics = resp.json()
    assert topics[0]["job_role_id"] == "role-7"
    assert topics[0]["description"] == "Acme interview topic"


def test_unknown_session_is_404(client: TestClient):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.get("/api/sessions/nope/summary").status_code == 404
    assert client.get("/api/sessions/nope/live").status_code == 404


def test_ws_rejects_unknown_topic_and_difficulty(client: TestClient):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/interview?candidate_id=c1&topic_id=astrology"):
            pass
    assert exc_info.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/interview?candidate_id=c1&topic_id=databases&difficulty=well-done"):
            pass
    assert exc_info.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/interview?topic_id=databases"):
            pass
    assert exc_info.value.code == 1008


def test_ws_interview_completed_flow(client: TestClient, provider: _TestProvider):
    url = "/ws/interview?candidate_id=c1&topic_id=neural-networks&difficulty=roasted&invite_id=inv-9"
    with client.websocket_connect(url) as ws:
        ws.send_json({"type": "connect"})
        started = _receive_until(ws, "session_started")
        session_id = started["session_id"]
        assert len(started["concepts"]) == 10
        assert started["difficulty"]["id"] == "roasted"
        assert _receive_until(ws, "status")["voice_status"] == "listening"

        live = client.get(f"/api/sessions/{session_id}/live").json()
        assert live["phase"] == "active"
        assert live["active"] is True

        ws.send_json({"type": "message", "role": "agent", "text": "Explain backpropagation."})
        ws.send_json({"type": "message", "role": "user", "text": "I think backpropagation is basically"})
        ws.send_json({"type": "message", "role": "user", "text": "stuff with gradients"})

        analysis = _receive_until(ws, "analysis")
        assert analysis["bluff_score"] == 76
        assert analysis["bluff_label"] == "Likely Bluffing"
        assert analysis["changed"] == [{"name": "Backpropagation", "from": "missing", "to": "shallow"}]

        update = _receive_until(ws, "contextual_update")
        assert "Press hard" in update["instruction"]
        assert "Backpropagation" in update["instruction"]

        ws.send_json({"type": "end"})
        assert _receive_until(ws, "session_ended")["status"] == "completed"

    record = client.get(f"/api/sessions/{session_id}").json()
    assert record["status"] == "completed"
    assert record["difficulty"] == "roasted"
    assert [entry["role"] for entry in record["transcript"]] == ["agent", "user", "user"]
    assert [sample["score"] for sample in record["bluff_history"]] == [76]

    summary = client.get(f"/api/sessions/{session_id}/summary").json()
    assert summary["grade"]["label"] == "Bluffer"
    assert summary["coverage"] == {"clear": 0, "shallow": 1, "missing": 9, "total": 10, "clear_pct": 0.0}
    assert summary["turns"] == {"candidate": 2, "interviewer": 1}
    assert summary["peak_bluff_score"] == 76

    assert "inv-9" in provider.notifier._completed  # test-only peek

    listing = client.get("/api/candidates/c1/sessions").json()
    assert [item["session_id"] for item in listing["sessions"]] == [session_id]
    assert listing["live_session_ids"] == []


def test_ws_closed_without_end_is_disconnected(client: TestClient, provider: _TestProvider):
    with client.websocket_connect("/ws/interview?candidate_id=c2&topic_id=databases&invite_id=inv-3") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "connect"})
        session_id = _receive_until(ws, "session_started")["session_id"]
        ws.send_json({"type": "message", "role": "user", "text": "Indexing"})

    record = client.get(f"/api/sessions/{session_id}").json()
    assert record["status"] == "disconnected"
    assert record["transcript"][0]["text"] == "Indexing"
    assert record["bluff_history"] == []
    assert "inv-3" not in provider.notifier._completed
    assert client.get(f"/api/sessions/{session_id}/live").json()["active"] is False


def test_system_metrics(client: TestClient):
    payload = client.get("/api/system/metrics").json()
    for key in ("sessions_active", "analysis_passes", "judge_failures", "persistence_failures", "followups_injected"):
        assert key in payload


class _GatedStore(LocalSessionStore):
    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def update_session(self, session_id, fields, revision=None):
        await self.gate.wait()
        return await super().update_session(session_id, fields, revision=revision)


class _ScriptedSocket:
    def __init__(self, query: dict, messages: list[dict]):
        self.query_params = query
        self.client_state = WebSocketState.CONNECTED
        self.sent: list[dict] = []
        self._incoming = [{"type": "websocket.receive", "text": json.dumps(item)} for item in messages]
        self._incoming.append({"type": "websocket.disconnect", "code": 1001})

    async def accept(self):
        return None

    async def receive(self):
        return self._incoming.pop(0)

    async def send_text(self, data: str):
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str | None = None):
        self.client_state = WebSocketState.DISCONNECTED


@pytest.mark.asyncio
async def test_ws_handler_releases_registry_entry_when_cancelled_during_close(provider: _TestProvider):
    provider.store = _GatedStore()
    websocket = _ScriptedSocket(
        {"candidate_id": "c9", "topic_id": "databases"},
        [{"type": "connect"}, {"type": "message", "role": "user", "text": "Indexes help"}],
    )

    handler = asyncio.create_task(interview_ws(websocket))
    await asyncio.sleep(0.1)
    assert not handler.done()

    session_id = next(item for item in websocket.sent if item["type"] == "session_started")["session_id"]
    handler.cancel()
    with pytest.raises(asyncio.CancelledError):
        await handler

    assert session_registry.get(session_id).active is False
    assert websocket not in websocket_send_locks

    provider.store.gate.set()
    await asyncio.sleep(0.05)
