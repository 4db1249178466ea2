"""Runtime bootstrap helpers."""

from __future__ import annotations

from typing import Any

from loguru import logger

from codex_relay.app.runtime import RelayRuntime
from codex_relay.config import load_settings


def build_runtime(**overrides: Any) -> RelayRuntime:
    """Build the relay runtime from environment settings plus explicit overrides."""
    settings = load_settings(**overrides)
    return RelayRuntime(settings)


async def prepare_runtime(runtime: RelayRuntime) -> None:
    """Startup checks: the agent CLI runs and the session registry is readable."""
    version = await runtime.executor.verify()
    logger.info("runtime.agent.ready binary={} version={}", runtime.settings.codex_bin, version or "?")
    await runtime.sessions.load()
