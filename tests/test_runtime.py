from pathlib import Path

import pytest

from codex_relay.agent import TurnResult
from codex_relay.app import policy
from codex_relay.app.runtime import RelayRuntime, agent_config_from
from codex_relay.config import Settings
from codex_relay.errors import AgentProcessError
from codex_relay.types import InboundPayload, assemble_prompt


def _payload(text: str, attachments: tuple[Path, ...] = ()) -> InboundPayload:
    return InboundPayload(prompt=text, user_content=text, attachments=attachments)


@pytest.mark.asyncio
async def test_first_turn_stores_new_session(settings: Settings, make_executor) -> None:
    executor = make_executor([TurnResult(reply="hi", session_id="S1")])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    result = await runtime.run_turn(5, _payload("hello"))

    assert result == TurnResult(reply="hi", session_id="S1")
    assert executor.requests[0].session_id is None
    assert await runtime.current_session(5) == "S1"


@pytest.mark.asyncio
async def test_next_turn_resumes_prior_session(settings: Settings, make_executor) -> None:
    executor = make_executor([TurnResult(reply="one", session_id="S1"), TurnResult(reply="two", session_id=None)])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    await runtime.run_turn("chat", _payload("first"))
    result = await runtime.run_turn("chat", _payload("second", (Path("/tmp/a.jpg"),)))

    assert executor.requests[1].session_id == "S1"
    assert executor.requests[1].attachments == (Path("/tmp/a.jpg"),)
    assert result.session_id == "S1"
    assert await runtime.current_session("chat") == "S1"


@pytest.mark.asyncio
async def test_failed_turn_leaves_session_untouched(settings: Settings, make_executor) -> None:
    executor = make_executor([TurnResult(reply="one", session_id="S1"), AgentProcessError("boom", exit_code=1)])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]
    await runtime.run_turn("chat", _payload("first"))

    with pytest.raises(AgentProcessError):
        await runtime.run_turn("chat", _payload("second"))

    assert await runtime.current_session("chat") == "S1"


@pytest.mark.asyncio
async def test_reset_starts_fresh_session(settings: Settings, make_executor) -> None:
    executor = make_executor([TurnResult(reply="one", session_id="S1"), TurnResult(reply="two", session_id="S2")])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]
    await runtime.run_turn("chat", _payload("first"))

    await runtime.reset("chat")
    await runtime.run_turn("chat", _payload("again"))

    assert executor.requests[1].session_id is None
    assert await runtime.current_session("chat") == "S2"


@pytest.mark.asyncio
async def test_meta_reply_retry_is_off_by_default(settings: Settings, make_executor) -> None:
    executor = make_executor([TurnResult(reply="I can only read files in this sandbox.", session_id="S1")])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    result = await runtime.run_turn("chat", _payload("fix the bug"))

    assert len(executor.requests) == 1
    assert result.reply.startswith("I can only read")


@pytest.mark.asyncio
async def test_meta_reply_retry_reruns_on_same_session(settings: Settings, make_executor) -> None:
    settings = settings.model_copy(update={"meta_retry_enabled": True})
    executor = make_executor(
        [
            TurnResult(reply="I can only read files in this sandbox.", session_id="S1"),
            TurnResult(reply="Here is the fix.", session_id=None),
        ]
    )
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    result = await runtime.run_turn("chat", _payload("fix the bug"))

    assert len(executor.requests) == 2
    assert executor.requests[1].session_id == "S1"
    assert "User request:\nfix the bug" in executor.requests[1].prompt
    assert result == TurnResult(reply="Here is the fix.", session_id="S1")


@pytest.mark.asyncio
async def test_failed_meta_reply_retry_keeps_first_reply(settings: Settings, make_executor) -> None:
    settings = settings.model_copy(update={"meta_retry_enabled": True})
    executor = make_executor(
        [
            TurnResult(reply="I can only read files here. Anyway, answer: 42", session_id="S1"),
            AgentProcessError("rate limited", exit_code=1),
        ]
    )
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    result = await runtime.run_turn("chat", _payload("what is the answer"))

    assert len(executor.requests) == 2
    assert result == TurnResult(reply="I can only read files here. Anyway, answer: 42", session_id="S1")
    assert await runtime.current_session("chat") == "S1"


@pytest.mark.asyncio
async def test_meta_reply_retry_skipped_when_user_asked_about_capabilities(settings: Settings, make_executor) -> None:
    settings = settings.model_copy(update={"meta_retry_enabled": True})
    executor = make_executor([TurnResult(reply="This session is read-only.", session_id="S1")])
    runtime = RelayRuntime(settings, executor=executor)  # type: ignore[arg-type]

    await runtime.run_turn("chat", _payload("What can you do in this sandbox?"))

    assert len(executor.requests) == 1


def test_policy_patterns() -> None:
    assert policy.looks_like_meta_reply("Approval policy is set to never.")
    assert not policy.looks_like_meta_reply("The function returns a list.")
    assert policy.asks_about_capabilities("what can you do?")
    assert policy.should_retry("deploy it", "I cannot write to that directory")


def test_assemble_prompt_prefixes_system_instructions() -> None:
    assert assemble_prompt("hello") == "hello"
    assert assemble_prompt("hello", "be brief") == "System instructions:\nbe brief\n\nhello"


def test_agent_config_from_settings(settings: Settings) -> None:
    settings = settings.model_copy(update={"codex_model": "o4", "codex_timeout_seconds": 60.0})
    config = agent_config_from(settings)

    assert config.binary == "codex"
    assert config.model == "o4"
    assert config.sandbox == "workspace-write"
    assert config.timeout_seconds == 60.0
    assert config.cwd == settings.codex_cwd
