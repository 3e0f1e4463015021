from datetime import date

from relay_core.domain.exceptions import ApiError
from relay_core.domain.models import MessageRef, RelayState, StatusSignal
from relay_core.prompts import load_instructions


def test_status_signal_events():
    ref = MessageRef(id="m1", cid="messaging:general")
    assert StatusSignal.GENERATING.to_event(ref) == {
        "type": "ai_indicator.update",
        "ai_state": "AI_STATE_GENERATING",
        "cid": "messaging:general",
        "message_id": "m1",
    }
    assert StatusSignal.EXTERNAL_SOURCES.to_event(ref)["ai_state"] == "AI_STATE_EXTERNAL_SOURCES"
    assert StatusSignal.ERROR.to_event(ref)["ai_state"] == "AI_STATE_ERROR"
    assert StatusSignal.CLEAR.to_event(ref) == {
        "type": "ai_indicator.clear",
        "cid": "messaging:general",
        "message_id": "m1",
    }


def test_relay_state_defaults():
    state = RelayState()
    assert state.accumulated_text == ""
    assert state.chunk_count == 0
    assert not state.terminated
    assert state.last_flush is None


def test_business_error_str_and_repr():
    err = ApiError(code="API_ERROR", message="boom", http_status=502)
    assert str(err) == "boom"
    assert repr(err) == "ApiError(code='API_ERROR', message='boom', http_status=502)"


def test_load_instructions_fills_date():
    text = load_instructions(today=date(2026, 1, 2))
    assert "2026-01-02" in text
    assert "web_search" in text
