"""Application runtime package."""

from codex_relay.app.bootstrap import build_runtime, prepare_runtime
from codex_relay.app.queue import ConversationQueue
from codex_relay.app.runtime import RelayRuntime
from codex_relay.app.sessions import SessionRegistry

__all__ = ["ConversationQueue", "RelayRuntime", "SessionRegistry", "build_runtime", "prepare_runtime"]
