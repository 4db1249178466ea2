"""codex-relay - relay chat messages to a command-line coding agent."""

from codex_relay.agent import TurnExecutor, TurnRequest, TurnResult
from codex_relay.app import ConversationQueue, RelayRuntime, SessionRegistry

__version__ = "0.1.0"

__all__ = ["ConversationQueue", "RelayRuntime", "SessionRegistry", "TurnExecutor", "TurnRequest", "TurnResult"]
