from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Protocol

from core.config import env_flag
from core.state import SessionStatus
from grillroom.session.models import MUTABLE_FIELDS, SessionRecord, utc_now_iso

logger = logging.getLogger("grillroom.session.store")


class SessionStore(Protocol):
    async def create_session(
        self,
        candidate_id: str,
        topic_id: str,
        topic_title: str,
        initial_concept_coverage: list[dict],
        **attrs,
    ) -> str:
        ...

    async def update_session(self, session_id: str, fields: dict, revision: int | None = None) -> bool:
        ...

    async def mark_stale_active_sessions_disconnected(self, candidate_id: str, topic_id: str) -> int:
        ...

    async def get_session(self, session_id: str) -> SessionRecord | None:
        ...

    async def list_candidate_sessions(self, candidate_id: str, limit: int = 50) -> list[SessionRecord]:
        ...


def _new_record(candidate_id: str, topic_id: str, topic_title: str, coverage: list[dict], attrs: dict) -> SessionRecord:
    now = utc_now_iso()
    return SessionRecord(
        id=str(uuid.uuid4()),
        user_id=str(candidate_id),
        topic_id=str(topic_id),
        topic_title=str(topic_title),
        difficulty=str(attrs.get("difficulty") or "medium-rare"),
        status=SessionStatus.IN_PROGRESS.value,
        concept_coverage=[dict(item) for item in coverage or []],
        created_at=now,
        updated_at=now,
        job_role_id=attrs.get("job_role_id"),
        invite_id=attrs.get("invite_id"),
        mode=str(attrs.get("mode") or "topic"),
    )


_TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED.value, SessionStatus.DISCONNECTED.value})


def _merge(record: SessionRecord, fields: dict, revision: int | None) -> bool:
    # completed and disconnected records are final
    if record.status in _TERMINAL_STATUSES:
        return False
    if revision is not None and int(revision) < int(record.revision):
        return False

    for key, value in dict(fields or {}).items():
        if key not in MUTABLE_FIELDS:
            logger.warning("update_session ignoring field | session_id=%s field=%s", record.id, key)
            continue
        if isinstance(value, list):
            value = [dict(item) if isinstance(item, dict) else item for item in value]
        setattr(record, key, value)

    if revision is not None:
        record.revision = int(revision)
    record.updated_at = utc_now_iso()
    return True


class LocalSessionStore:
    def __init__(self, path: str | Path | None = None):
        self._lock = asyncio.Lock()
        self._records: dict[str, SessionRecord] = {}
        self._path = Path(path) if path else None
        if self._path is not None:
            self._load()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("session store load failed | path=%s err=%s", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        for session_id, data in payload.items():
            if isinstance(data, dict):
                self._records[str(session_id)] = SessionRecord.from_dict(data)

    def _write_file(self, snapshot: dict) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(snapshot, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self._path)

    async def _persist(self) -> None:
        if self._path is None:
            return
        snapshot = {session_id: record.to_dict() for session_id, record in self._records.items()}
        await asyncio.to_thread(self._write_file, snapshot)

    async def create_session(
        self,
        candidate_id: str,
        topic_id: str,
        topic_title: str,
        initial_concept_coverage: list[dict],
        **attrs,
    ) -> str:
        record = _new_record(candidate_id, topic_id, topic_title, initial_concept_coverage, attrs)
        async with self._lock:
            self._records[record.id] = record
            await self._persist()
        return record.id

    async def update_session(self, session_id: str, fields: dict, revision: int | None = None) -> bool:
        async with self._lock:
            record = self._records.get(str(session_id or ""))
            if record is None:
                logger.warning("update_session unknown session | session_id=%s", session_id)
                return False
            if not _merge(record, fields, revision):
                logger.info(
                    "update_session write dropped | session_id=%s revision=%s status=%s",
                    session_id,
                    revision,
                    record.status,
                )
                return False
            await self._persist()
            return True

    async def mark_stale_active_sessions_disconnected(self, candidate_id: str, topic_id: str) -> int:
        marked = 0
        async with self._lock:
            for record in self._records.values():
                if record.user_id != str(candidate_id) or record.topic_id != str(topic_id):
                    continue
                if record.status != SessionStatus.IN_PROGRESS.value:
                    continue
                record.status = SessionStatus.DISCONNECTED.value
                record.updated_at = utc_now_iso()
                marked += 1
            if marked:
                await self._persist()
        return marked

    async def get_session(self, session_id: str) -> SessionRecord | None:
        async with self._lock:
            record = self._records.get(str(session_id or ""))
            return SessionRecord.from_dict(record.to_dict()) if record else None

    async def list_candidate_sessions(self, candidate_id: str, limit: int = 50) -> list[SessionRecord]:
        capped = max(1, min(int(limit or 50), 200))
        async with self._lock:
            rows = [
                SessionRecord.from_dict(record.to_dict())
                for record in self._records.values()
                if record.user_id == str(candidate_id)
            ]
        rows.sort(key=lambda item: item.created_at, reverse=True)
        return rows[:capped]


class RedisSessionStore:
    """Redis-backed session records.

    Keys:
    - session:{session_id} (JSON document)
    - candidate:{candidate_id}:sessions (set of session ids)
    """

    def __init__(self, redis_url: str):
        try:
            import redis.asyncio as redis_async  # type: ignore
        except Exception as exc:
            raise RuntimeError("redis package not installed; install 'redis' to enable the redis session store") from exc

        self._redis = redis_async.from_url(redis_url, decode_responses=True)
        self._lock = asyncio.Lock()

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def _candidate_key(candidate_id: str) -> str:
        return f"candidate:{candidate_id}:sessions"

    async def _read(self, session_id: str) -> SessionRecord | None:
        raw = await self._redis.get(self._session_key(session_id))
        if not raw:
            return None
        try:
            return SessionRecord.from_dict(json.loads(raw))
        except Exception as exc:
            logger.warning("redis session decode failed | session_id=%s err=%s", session_id, exc)
            return None

    async def _write(self, record: SessionRecord) -> None:
        await self._redis.set(self._session_key(record.id), json.dumps(record.to_dict(), ensure_ascii=False))

    async def create_session(
        self,
        candidate_id: str,
        topic_id: str,
        topic_title: str,
        initial_concept_coverage: list[dict],
        **attrs,
    ) -> str:
        record = _new_record(candidate_id, topic_id, topic_title, initial_concept_coverage, attrs)
        await self._write(record)
        await self._redis.sadd(self._candidate_key(record.user_id), record.id)
        return record.id

    async def update_session(self, session_id: str, fields: dict, revision: int | None = None) -> bool:
        async with self._lock:
            record = await self._read(session_id)
            if record is None:
                logger.warning("update_session unknown session | session_id=%s", session_id)
                return False
            if not _merge(record, fields, revision):
                logger.info(
                    "update_session write dropped | session_id=%s revision=%s status=%s",
                    session_id,
                    revision,
                    record.status,
                )
                return False
            await self._write(record)
            return True

    async def mark_stale_active_sessions_disconnected(self, candidate_id: str, topic_id: str) -> int:
        marked = 0
        async with self._lock:
            session_ids = await self._redis.smembers(self._candidate_key(candidate_id))
            for session_id in session_ids or []:
                record = await self._read(session_id)
                if record is None or record.topic_id != str(topic_id):
                    continue
                if record.status != SessionStatus.IN_PROGRESS.value:
                    continue
                record.status = SessionStatus.DISCONNECTED.value
                record.updated_at = utc_now_iso()
                await self._write(record)
                marked += 1
        return marked

    async def get_session(self, session_id: str) -> SessionRecord | None:
        return await self._read(session_id)

    async def list_candidate_sessions(self, candidate_id: str, limit: int = 50) -> list[SessionRecord]:
        capped = max(1, min(int(limit or 50), 200))
        session_ids = await self._redis.smembers(self._candidate_key(candidate_id))
        rows = []
        for session_id in session_ids or []:
            record = await self._read(session_id)
            if record is not None:
                rows.append(record)
        rows.sort(key=lambda item: item.created_at, reverse=True)
        return rows[:capped]


def build_session_store() -> SessionStore:
    if not env_flag("USE_REDIS_SESSION_STORE"):
        path = str(os.getenv("SESSION_STORE_PATH") or "").strip()
        return LocalSessionStore(path or None)

    redis_url = str(os.getenv("REDIS_URL") or "").strip()
    if not redis_url:
        raise RuntimeError("USE_REDIS_SESSION_STORE=true requires REDIS_URL")
    return RedisSessionStore(redis_url)
