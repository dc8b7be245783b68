import threading
import time
from typing import Any


_lock = threading.Lock()
_metrics: dict[str, float] = {
    "sessions_active": 0.0,
    "sessions_started": 0.0,
    "session_end_completed": 0.0,
    "session_end_disconnected": 0.0,
    "analysis_passes": 0.0,
    "analysis_discarded": 0.0,
    "judge_failures": 0.0,
    "judge_failures_retryable": 0.0,
    "persistence_failures": 0.0,
    "followups_injected": 0.0,
    "followups_dropped": 0.0,
    "ws_errors": 0.0,
    "judge_latency_total_ms": 0.0,
    "judge_latency_samples": 0.0,
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def decrement_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        next_value = float(_metrics.get(key, 0.0)) - float(amount)
        _metrics[key] = max(0.0, next_value)


def observe_judge_latency_ms(value_ms: float) -> None:
    latency = max(0.0, float(value_ms or 0.0))
    with _lock:
        _metrics["judge_latency_total_ms"] = float(_metrics.get("judge_latency_total_ms", 0.0)) + latency
        _metrics["judge_latency_samples"] = float(_metrics.get("judge_latency_samples", 0.0)) + 1.0


def record_session_end(status: str) -> None:
    normalized = str(status or "").strip().lower()
    metric_key = "session_end_completed" if normalized == "completed" else "session_end_disconnected"
    with _lock:
        _metrics[metric_key] = float(_metrics.get(metric_key, 0.0)) + 1.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    latency_samples = max(1.0, float(data.get("judge_latency_samples") or 0.0))

    payload: dict[str, Any] = {
        "generated_at": time.time(),
        "sessions_active": int(data.get("sessions_active") or 0.0),
        "sessions_started": int(data.get("sessions_started") or 0.0),
        "session_end_completed": int(data.get("session_end_completed") or 0.0),
        "session_end_disconnected": int(data.get("session_end_disconnected") or 0.0),
        "analysis_passes": int(data.get("analysis_passes") or 0.0),
        "analysis_discarded": int(data.get("analysis_discarded") or 0.0),
        "judge_failures": int(data.get("judge_failures") or 0.0),
        "judge_failures_retryable": int(data.get("judge_failures_retryable") or 0.0),
        "persistence_failures": int(data.get("persistence_failures") or 0.0),
        "followups_injected": int(data.get("followups_injected") or 0.0),
        "followups_dropped": int(data.get("followups_dropped") or 0.0),
        "ws_errors": int(data.get("ws_errors") or 0.0),
        "judge_latency_samples": int(data.get("judge_latency_samples") or 0.0),
        "avg_judge_latency_ms": round(float(data.get("judge_latency_total_ms") or 0.0) / latency_samples, 2),
    }

    if extra:
        payload.update(extra)
    return payload
