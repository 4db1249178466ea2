"""Agent subprocess bridge."""

from codex_relay.agent.events import StreamState, TurnStream
from codex_relay.agent.executor import FALLBACK_REPLY, AgentConfig, TurnExecutor, TurnRequest, TurnResult, build_args

__all__ = [
    "FALLBACK_REPLY",
    "AgentConfig",
    "StreamState",
    "TurnExecutor",
    "TurnRequest",
    "TurnResult",
    "TurnStream",
    "build_args",
]
