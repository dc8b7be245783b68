import asyncio
import json
import logging
import os
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from core.logger import log_event
from core.state import SessionPhase
from grillroom.api import dependencies
from grillroom.difficulty.profiles import get_difficulty
from grillroom.session.interview import InterviewSession
from grillroom.session.registry import session_registry
from grillroom.system_metrics import increment_metric

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("ws_interview")

MAX_WS_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "65536")))

router = APIRouter()
websocket_send_locks: dict[WebSocket, asyncio.Lock] = {}


async def _send_text_with_lock(websocket: WebSocket, encoded_payload: str) -> None:
    send_lock = websocket_send_locks.get(websocket)
    if send_lock is None:
        return
    async with send_lock:
        await websocket.send_text(encoded_payload)


class WebSocketTransport:
    """Session transport over one client socket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def publish(self, payload: dict) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            return
        await _send_text_with_lock(self.websocket, json.dumps(payload))

    async def send_contextual_update(self, instruction: str) -> None:
        await self.publish({"type": "contextual_update", "instruction": instruction})


def _query(websocket: WebSocket, name: str) -> str:
    return str(websocket.query_params.get(name) or "").strip()


@router.websocket("/ws/interview")
async def interview_ws(websocket: WebSocket):
    provider = dependencies.get_provider()

    candidate_id = _query(websocket, "candidate_id")
    if not candidate_id:
        await websocket.close(code=1008, reason="candidate_id required")
        return

    topic = provider.get_topic_catalog().get(_query(websocket, "topic_id"))
    if topic is None:
        await websocket.close(code=1008, reason="Unknown topic")
        return

    difficulty = get_difficulty(_query(websocket, "difficulty"))
    if difficulty is None:
        await websocket.close(code=1008, reason="Unknown difficulty")
        return

    await websocket.accept()
    websocket_send_locks[websocket] = asyncio.Lock()
    connection_id = str(uuid.uuid4())
    transport = WebSocketTransport(websocket)

    interview = InterviewSession(
        candidate_id=candidate_id,
        topic=topic,
        store=provider.get_session_store(),
        judge=provider.create_judge(),
        difficulty=difficulty,
        transport=transport,
        invite_notifier=provider.get_invite_notifier(),
        job_role_id=_query(websocket, "job_role_id") or None,
        invite_id=_query(websocket, "invite_id") or None,
        quiet_period_sec=provider.quiet_period_sec,
    )

    def _log_event(event: str, **fields):
        log_event("ws_interview", event, interview.session_id or connection_id, **fields)

    async def _safe_send(payload: dict):
        try:
            await transport.publish(payload)
        except Exception as exc:
            logger.warning("ws send failed | connection_id=%s err=%s", connection_id, exc)

    registered_id: str | None = None
    stop_reason = "client_gone"
    _log_event("connect", topic_id=topic.id, difficulty=difficulty.id)

    try:
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                break

            text_payload = msg.get("text")
            if not text_payload:
                continue
            if len(text_payload.encode("utf-8")) > MAX_WS_TEXT_BYTES:
                logger.warning(
                    "WS message too large | connection_id=%s bytes=%s",
                    connection_id,
                    len(text_payload.encode("utf-8")),
                )
                continue

            try:
                payload = json.loads(text_payload)
            except json.JSONDecodeError:
                await _safe_send({"type": "error", "message": "Invalid message."})
                continue
            if not isinstance(payload, dict):
                continue

            payload_type = str(payload.get("type") or "").strip().lower()
            _log_event("message_received", message_type=payload_type or "unknown")

            if payload_type == "connect":
                if interview.phase == SessionPhase.IDLE:
                    superseded = await session_registry.supersede(candidate_id, topic.id, keep=interview)
                    if superseded:
                        _log_event("sessions_superseded", count=superseded)
                session_id = await interview.start()
                if registered_id is None or registered_id != session_id:
                    if registered_id is not None:
                        session_registry.release(registered_id)
                    registered_id = session_id or connection_id
                    session_registry.register(registered_id, interview)
                await _safe_send({
                    "type": "session_started",
                    "session_id": session_id,
                    "topic": topic.to_dict(),
                    "difficulty": difficulty.to_dict(),
                    "concepts": interview.knowledge_map.snapshot(),
                })
                await interview.on_connected()
                continue

            if payload_type == "message":
                await interview.on_utterance(str(payload.get("role") or ""), str(payload.get("text") or ""))
                if registered_id:
                    session_registry.touch(registered_id)
                continue

            if payload_type == "speaking":
                await interview.set_speaking(bool(payload.get("value")))
                continue

            if payload_type == "error":
                stop_reason = str(payload.get("reason") or "transport_error")
                await interview.on_transport_error(stop_reason)
                continue

            if payload_type == "end":
                stop_reason = "end"
                await interview.end()
                break

            if payload_type == "ping":
                await _safe_send({"type": "pong"})
                continue

            if payload_type == "pong":
                continue

            logger.warning("Unknown ws message type | connection_id=%s type=%s", connection_id, payload_type)
    except WebSocketDisconnect:
        stop_reason = "client_gone"
    except Exception as exc:
        stop_reason = "transport_error"
        increment_metric("ws_errors")
        logger.warning("ws loop failed | connection_id=%s err=%s", connection_id, exc)
        await interview.on_transport_error(stop_reason)
    finally:
        # release before any await; the handler may be cancelled during close()
        if registered_id:
            session_registry.release(registered_id)
        websocket_send_locks.pop(websocket, None)
        try:
            await interview.close()
        finally:
            if websocket.client_state == WebSocketState.CONNECTED:
                try:
                    await websocket.close()
                except Exception as exc:
                    logger.warning("ws close failed | connection_id=%s err=%s", connection_id, exc)
            _log_event("disconnect", reason=stop_reason, phase=interview.phase.value)
