"""Application runtime: queue, session registry and agent executor wired together."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from codex_relay.agent import AgentConfig, TurnExecutor, TurnRequest, TurnResult
from codex_relay.app import policy
from codex_relay.app.queue import ConversationQueue, Task
from codex_relay.app.sessions import SessionRegistry
from codex_relay.config import Settings
from codex_relay.errors import RelayError
from codex_relay.transcription import Transcriber
from codex_relay.types import InboundPayload


def agent_config_from(settings: Settings) -> AgentConfig:
    return AgentConfig(
        binary=settings.codex_bin,
        cwd=settings.codex_cwd,
        sandbox=settings.codex_sandbox,
        model=settings.codex_model,
        timeout_seconds=settings.codex_timeout_seconds,
    )


class RelayRuntime:
    """Owns every piece of shared mutable state for one relay process."""

    def __init__(
        self,
        settings: Settings,
        *,
        executor: TurnExecutor | None = None,
        sessions: SessionRegistry | None = None,
        queue: ConversationQueue | None = None,
        transcriber: Transcriber | None = None,
    ) -> None:
        self.settings = settings
        self.executor = executor or TurnExecutor(agent_config_from(settings))
        self.sessions = sessions or SessionRegistry(settings.sessions_file)
        self.queue = queue or ConversationQueue()
        self.transcriber = transcriber or Transcriber(
            api_key=settings.groq_api_key,
            base_url=settings.groq_base_url,
            model=settings.transcription_model,
        )

    def submit(self, key: object, task: Task) -> None:
        self.queue.submit(key, task)

    async def run_turn(self, key: object, payload: InboundPayload) -> TurnResult:
        """Run one turn for a conversation and record the session it continued."""
        prior = await self.sessions.get(key)
        result = await self._execute(key, payload.prompt, prior, payload.attachments)
        active = result.session_id or prior

        if self.settings.meta_retry_enabled and policy.should_retry(payload.user_content, result.reply):
            logger.info("runtime.retry.meta_reply key={}", key)
            try:
                retry = await self._execute(
                    key, policy.build_retry_prompt(payload.user_content), active, payload.attachments
                )
            except RelayError as exc:
                logger.warning("runtime.retry.failed key={} kind={} error={}", key, type(exc).__name__, exc)
            else:
                active = retry.session_id or active
                if retry.reply.strip():
                    result = TurnResult(reply=retry.reply, session_id=active)

        return TurnResult(reply=result.reply, session_id=active)

    async def _execute(
        self, key: object, prompt: str, session_id: str | None, attachments: tuple[Path, ...]
    ) -> TurnResult:
        result = await self.executor.run(TurnRequest(prompt=prompt, session_id=session_id, attachments=attachments))
        if result.session_id:
            await self.sessions.set(key, result.session_id)
        return result

    async def current_session(self, key: object) -> str | None:
        return await self.sessions.get(key)

    async def reset(self, key: object) -> None:
        await self.sessions.clear(key)
        logger.info("runtime.session.reset key={}", key)

    async def transcribe(self, path: Path) -> str:
        return await self.transcriber.transcribe(path)

    async def aclose(self) -> None:
        await self.queue.aclose()
