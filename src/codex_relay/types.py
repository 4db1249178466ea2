"""Shared value types."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class InboundPayload:
    """A chat message prepared for the agent.

    `prompt` is what the agent receives; `user_content` is the user's own part of it
    (text, captions, transcripts) and is what retry heuristics inspect.
    """

    prompt: str
    user_content: str
    attachments: tuple[Path, ...] = ()


def assemble_prompt(user_content: str, system_prompt: str | None = None) -> str:
    parts = [f"System instructions:\n{system_prompt}", user_content] if system_prompt else [user_content]
    return "\n\n".join(parts).strip()
