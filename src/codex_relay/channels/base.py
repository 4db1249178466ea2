"""Base channel interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from codex_relay.app.runtime import RelayRuntime


class BaseChannel(ABC):
    """Abstract base class for channel adapters."""

    name: str = "base"

    def __init__(self, runtime: RelayRuntime) -> None:
        self.runtime = runtime

    @abstractmethod
    async def start(self) -> None:
        """Start receiving messages; returns when the channel stops."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop receiving messages and release transport resources."""

    @abstractmethod
    async def send(self, chat_id: str, text: str) -> None:
        """Deliver one reply to a conversation."""
