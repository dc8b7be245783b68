import json
import logging
from enum import Enum
from typing import Any

# Candidate speech and interviewer prompts never reach the logs verbatim.
_REDACTED_KEYS = frozenset({
	"text",
	"transcript",
	"utterance_text",
	"instruction",
	"follow_up_question",
	"prompt",
})


def _redact(value: Any) -> dict:
	return {"redacted": True, "length": len(str(value or ""))}


def _sanitize_value(key: str, value: Any) -> Any:
	if key.lower() in _REDACTED_KEYS:
		return _redact(value)
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, (str, int, float, bool)) or value is None:
		return value
	if isinstance(value, dict):
		return {str(k): _sanitize_value(str(k), v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set, frozenset)):
		return [_sanitize_value(key, item) for item in value]
	return str(value)


def log_event(component: str, event: str, session_id: str, **fields) -> None:
	"""Emit one JSON line on the ``grillroom.<component>`` logger."""
	component_name = str(component or "grillroom")
	payload = {
		"component": component_name,
		"event": str(event or "unknown"),
		"session_id": str(session_id or ""),
	}
	for key, value in fields.items():
		payload[str(key)] = _sanitize_value(str(key), value)
	logging.getLogger(f"grillroom.{component_name}").info(json.dumps(payload, ensure_ascii=False, default=str))
