from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from codex_relay.agent import AgentConfig, TurnRequest, TurnResult
from codex_relay.config import Settings

FAKE_AGENT_SOURCE = """
import json
import os
import sys
import time

args = sys.argv[1:]
scenario = json.loads(os.environ.get("FAKE_AGENT_SCENARIO", "{}"))
if args == ["--version"]:
    print("fake-agent 1.0.0")
    sys.exit(scenario.get("version_exit", 0))

record = os.environ.get("FAKE_AGENT_RECORD")
if record:
    with open(record, "a", encoding="utf-8") as handle:
        handle.write(json.dumps({"args": args, "cwd": os.getcwd()}) + "\\n")

output = args[args.index("--output-last-message") + 1]
for line in scenario.get("stdout", []):
    print(line, flush=True)
for line in scenario.get("stderr", []):
    print(line, file=sys.stderr, flush=True)
if "reply" in scenario:
    with open(output, "w", encoding="utf-8") as handle:
        handle.write(scenario["reply"])
time.sleep(scenario.get("sleep", 0))
sys.exit(scenario.get("exit", 0))
"""


class FakeAgent:
    def __init__(self, binary: Path, record: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        self.binary = binary
        self.record = record
        self._monkeypatch = monkeypatch

    def config(self, *, cwd: Path | None = None, **kwargs: Any) -> AgentConfig:
        return AgentConfig(binary=str(self.binary), cwd=cwd, **kwargs)

    def scenario(self, **scenario: Any) -> None:
        self._monkeypatch.setenv("FAKE_AGENT_SCENARIO", json.dumps(scenario))

    def calls(self) -> list[dict[str, Any]]:
        if not self.record.exists():
            return []
        return [json.loads(line) for line in self.record.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def fake_agent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeAgent:
    binary = tmp_path / "fake-agent"
    binary.write_text(f"#!{sys.executable}\n{FAKE_AGENT_SOURCE}", encoding="utf-8")
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    record = tmp_path / "agent-calls.jsonl"
    monkeypatch.setenv("FAKE_AGENT_RECORD", str(record))
    monkeypatch.setenv("FAKE_AGENT_SCENARIO", "{}")
    return FakeAgent(binary, record, monkeypatch)


class FakeExecutor:
    """Stands in for TurnExecutor; replies come from a queue of results or a handler."""

    def __init__(self, results: list[TurnResult | Exception] | None = None) -> None:
        self.results = list(results or [])
        self.requests: list[TurnRequest] = []
        self.handler: Callable[[TurnRequest], Any] | None = None

    async def run(self, request: TurnRequest) -> TurnResult:
        self.requests.append(request)
        if self.handler is not None:
            return await self.handler(request)
        outcome = self.results.pop(0) if self.results else TurnResult(reply="ok")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def verify(self) -> str:
        return "fake 1.0"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        telegram_bot_token="t",  # noqa: S106
        sessions_file=tmp_path / "data" / "sessions.json",
        codex_cwd=tmp_path,
        groq_api_key="",
    )


@pytest.fixture
def make_executor() -> Callable[..., FakeExecutor]:
    return FakeExecutor
