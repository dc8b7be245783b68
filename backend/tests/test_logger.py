import json
import logging

from core.logger import log_event
from core.state import SessionPhase


def test_log_event_redacts_free_text(caplog):
    with caplog.at_level(logging.INFO, logger="grillroom.interview"):
        log_event("interview", "analysis_applied", "s1", text="I think it is basically magic", phase=SessionPhase.ACTIVE, score=40)

    record = caplog.records[-1]
    assert record.name == "grillroom.interview"
    payload = json.loads(record.getMessage())
    assert payload["session_id"] == "s1"
    assert payload["text"] == {"redacted": True, "length": 29}
    assert payload["phase"] == "active"
    assert payload["score"] == 40
