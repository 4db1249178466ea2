"""Channel adapters."""

from codex_relay.channels.base import BaseChannel
from codex_relay.channels.chunking import split_reply
from codex_relay.channels.telegram import TelegramChannel, TelegramConfig

__all__ = ["BaseChannel", "TelegramChannel", "TelegramConfig", "split_reply"]
