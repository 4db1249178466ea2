"""Incremental parser for the agent's line-delimited event stream."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

LineSource = Literal["stdout", "stderr"]

SESSION_STARTED = "thread.started"
ERROR = "error"
TURN_FAILED = "turn.failed"


class StreamState(Enum):
    READING = "reading"
    TERMINATED = "terminated"


@dataclass
class TurnStream:
    """Captured state of one turn's output streams.

    Every non-blank line is remembered as the last line of its source. Lines that
    decode to a JSON object are additionally inspected for session and error
    events; anything else is ignored.
    """

    state: StreamState = StreamState.READING
    session_id: str | None = None
    errors: list[str] = field(default_factory=list)
    last_stdout: str | None = None
    last_stderr: str | None = None
    exit_code: int | None = None

    def feed(self, line: str, source: LineSource = "stdout") -> None:
        if self.state is StreamState.TERMINATED:
            raise RuntimeError("stream already terminated")
        text = line.strip()
        if not text:
            return
        if source == "stderr":
            self.last_stderr = text
        else:
            self.last_stdout = text

        event = _decode_event(text)
        if event is None:
            return
        kind = event.get("type")
        if kind == SESSION_STARTED:
            thread_id = event.get("thread_id")
            if isinstance(thread_id, str) and thread_id:
                self.session_id = thread_id
        elif kind == ERROR:
            message = event.get("message")
            if isinstance(message, str):
                self.errors.append(message)
        elif kind == TURN_FAILED:
            error = event.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            if isinstance(message, str):
                self.errors.append(message)

    def terminate(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.state = StreamState.TERMINATED

    def failure_message(self) -> str:
        """Best available diagnostic for a failed turn."""
        if self.errors:
            return self.errors[-1]
        if self.last_stderr:
            return self.last_stderr
        if self.last_stdout:
            return self.last_stdout
        return f"Agent process exited with status {self.exit_code}"


def _decode_event(text: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload
