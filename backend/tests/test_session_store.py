import json

import pytest

from grillroom.session.store import LocalSessionStore, RedisSessionStore, build_session_store


_COVERAGE = [{"name": "A", "status": "missing"}, {"name": "B", "status": "missing"}]


@pytest.mark.asyncio
async def test_create_and_get_session(store: LocalSessionStore):
    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE, difficulty="roasted", invite_id="inv-1")
    record = await store.get_session(session_id)

    assert record.user_id == "cand-1"
    assert record.status == "in_progress"
    assert record.difficulty == "roasted"
    assert record.invite_id == "inv-1"
    assert record.concept_coverage == _COVERAGE
    assert record.revision == 0


@pytest.mark.asyncio
async def test_stale_revisions_are_rejected(store: LocalSessionStore):
    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)

    assert await store.update_session(session_id, {"final_bluff_score": 40}, revision=2) is True
    assert await store.update_session(session_id, {"final_bluff_score": 10}, revision=1) is False

    record = await store.get_session(session_id)
    assert record.final_bluff_score == 40
    assert record.revision == 2


@pytest.mark.asyncio
async def test_update_ignores_immutable_fields(store: LocalSessionStore):
    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.update_session(session_id, {"user_id": "someone-else", "status": "completed"})

    record = await store.get_session(session_id)
    assert record.user_id == "cand-1"
    assert record.status == "completed"


@pytest.mark.asyncio
async def test_update_unknown_session_returns_false(store: LocalSessionStore):
    assert await store.update_session("missing", {"status": "completed"}) is False


@pytest.mark.asyncio
async def test_returned_records_are_copies(store: LocalSessionStore):
    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    record = await store.get_session(session_id)
    record.concept_coverage[0]["status"] = "clear"

    fresh = await store.get_session(session_id)
    assert fresh.concept_coverage[0]["status"] == "missing"


@pytest.mark.asyncio
async def test_mark_stale_only_touches_same_candidate_and_topic(store: LocalSessionStore):
    stale = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    done = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.update_session(done, {"status": "completed"})
    other_topic = await store.create_session("cand-1", "xyz", "Other", _COVERAGE)
    other_candidate = await store.create_session("cand-2", "abc", "Alphabet", _COVERAGE)

    assert await store.mark_stale_active_sessions_disconnected("cand-1", "abc") == 1

    assert (await store.get_session(stale)).status == "disconnected"
    assert (await store.get_session(done)).status == "completed"
    assert (await store.get_session(other_topic)).status == "in_progress"
    assert (await store.get_session(other_candidate)).status == "in_progress"


@pytest.mark.asyncio
async def test_list_candidate_sessions_newest_first(store: LocalSessionStore):
    first = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    second = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.create_session("cand-2", "abc", "Alphabet", _COVERAGE)

    rows = await store.list_candidate_sessions("cand-1")
    assert {row.id for row in rows} == {first, second}
    assert rows[0].created_at >= rows[1].created_at
    assert len(await store.list_candidate_sessions("cand-1", limit=1)) == 1


@pytest.mark.asyncio
async def test_file_mirror_survives_restart(tmp_path):
    path = tmp_path / "sessions.json"
    store = LocalSessionStore(path)
    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.update_session(session_id, {"final_bluff_score": 55, "status": "completed"}, revision=3)

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk[session_id]["final_bluff_score"] == 55

    reloaded = LocalSessionStore(path)
    record = await reloaded.get_session(session_id)
    assert record.status == "completed"
    assert record.revision == 3


def test_build_session_store_defaults_to_local(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("SESSION_STORE_PATH", raising=False)
    assert isinstance(build_session_store(), LocalSessionStore)


def test_build_session_store_requires_redis_url(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("USE_REDIS_SESSION_STORE", "true")
    monkeypatch.delenv("REDIS_URL", raising=False)
    with pytest.raises(RuntimeError):
        build_session_store()


def test_build_session_store_selects_redis(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("USE_REDIS_SESSION_STORE", "true")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    # from_url is lazy; no connection is opened here.
    assert isinstance(build_session_store(), RedisSessionStore)


class _FakeRedis:
    def __init__(self):
        self.values: dict[str, str] = {}
        self.sets: dict[str, set] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))


@pytest.mark.asyncio
async def test_redis_store_documents_and_candidate_index():
    store = RedisSessionStore("redis://localhost:6379/0")
    store._redis = _FakeRedis()  # test-only swap of the client

    stale = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    assert f"session:{stale}" in store._redis.values
    assert store._redis.sets["candidate:cand-1:sessions"] == {stale}

    assert await store.update_session(stale, {"final_bluff_score": 30}, revision=1) is True
    assert await store.update_session(stale, {"final_bluff_score": 90}, revision=0) is False

    fresh = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    assert await store.mark_stale_active_sessions_disconnected("cand-1", "abc") == 2

    record = await store.get_session(stale)
    assert record.final_bluff_score == 30
    assert record.status == "disconnected"
    assert {row.id for row in await store.list_candidate_sessions("cand-1")} == {stale, fresh}


@pytest.mark.asyncio
async def test_terminal_records_reject_further_writes(store: LocalSessionStore):
    finished = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    assert await store.update_session(finished, {"status": "completed", "final_bluff_score": 20}, revision=4) is True
    assert await store.update_session(finished, {"status": "disconnected"}, revision=5) is False

    superseded = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.mark_stale_active_sessions_disconnected("cand-1", "abc")
    assert await store.update_session(superseded, {"status": "completed", "transcript": [{"role": "user", "text": "late"}]}, revision=9) is False

    assert (await store.get_session(finished)).status == "completed"
    assert (await store.get_session(finished)).final_bluff_score == 20
    record = await store.get_session(superseded)
    assert record.status == "disconnected"
    assert record.transcript == []


@pytest.mark.asyncio
async def test_redis_store_terminal_records_reject_further_writes():
    store = RedisSessionStore("redis://localhost:6379/0")
    store._redis = _FakeRedis()  # test-only swap of the client

    session_id = await store.create_session("cand-1", "abc", "Alphabet", _COVERAGE)
    await store.mark_stale_active_sessions_disconnected("cand-1", "abc")

    assert await store.update_session(session_id, {"status": "completed"}, revision=3) is False
    assert (await store.get_session(session_id)).status == "disconnected"
