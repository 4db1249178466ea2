import json

import pytest

from codex_relay.agent.events import StreamState, TurnStream


def test_session_and_errors_are_captured() -> None:
    stream = TurnStream()
    stream.feed(json.dumps({"type": "thread.started", "thread_id": "S1"}))
    stream.feed(json.dumps({"type": "item.completed", "item": {"type": "agent_message"}}))
    stream.feed(json.dumps({"type": "error", "message": "reconnecting"}))
    stream.feed(json.dumps({"type": "turn.failed", "error": {"message": "quota"}}))

    assert stream.session_id == "S1"
    assert stream.errors == ["reconnecting", "quota"]
    assert stream.failure_message() == "quota"


def test_events_with_wrong_field_types_are_ignored() -> None:
    stream = TurnStream()
    stream.feed(json.dumps({"type": "thread.started", "thread_id": 42}))
    stream.feed(json.dumps({"type": "thread.started", "thread_id": ""}))
    stream.feed(json.dumps({"type": "error", "message": None}))
    stream.feed(json.dumps({"type": "turn.failed", "error": "flat string"}))

    assert stream.session_id is None
    assert stream.errors == []


def test_blank_lines_are_not_remembered() -> None:
    stream = TurnStream()
    stream.feed("diagnostic", "stderr")
    stream.feed("   ", "stderr")
    stream.feed("\n", "stdout")

    assert stream.last_stderr == "diagnostic"
    assert stream.last_stdout is None


def test_failure_message_falls_back_to_exit_status() -> None:
    stream = TurnStream()
    stream.terminate(7)

    assert stream.state is StreamState.TERMINATED
    assert stream.failure_message() == "Agent process exited with status 7"


def test_feed_after_terminate_is_rejected() -> None:
    stream = TurnStream()
    stream.terminate(0)

    with pytest.raises(RuntimeError):
        stream.feed("late line")
