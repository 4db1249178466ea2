"""Configuration management for the relay."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SandboxMode = Literal["read-only", "workspace-write", "danger-full-access"]

SANDBOX_MODES: tuple[str, ...] = ("read-only", "workspace-write", "danger-full-access")
DEFAULT_SANDBOX: SandboxMode = "workspace-write"
DEFAULT_MAX_REPLY_CHARS = 3800
MIN_REPLY_CHARS = 200
MAX_REPLY_CHARS = 4096


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Telegram
    telegram_bot_token: str | None = Field(default=None, description="Telegram bot token")
    allowed_chat_ids: str = Field(default="", description="Comma separated chat ids allowed to use the bot")
    telegram_markdown: bool = Field(default=True, description="Render replies as MarkdownV2")
    max_reply_chars: int = Field(default=DEFAULT_MAX_REPLY_CHARS, description="Maximum characters per reply segment")

    # Agent
    codex_bin: str = Field(default="codex", description="Agent executable")
    codex_model: str | None = Field(default=None, description="Optional model override")
    codex_sandbox: SandboxMode = Field(default=DEFAULT_SANDBOX, description="Agent sandbox mode")
    codex_cwd: Path = Field(default_factory=Path.cwd, description="Agent working directory")
    codex_timeout_seconds: float | None = Field(default=None, description="Wall-clock timeout for one turn")
    system_prompt: str | None = Field(default=None, description="Instructions prepended to every prompt")
    meta_retry_enabled: bool = Field(default=False, description="Retry replies that discuss agent capabilities")

    # Sessions
    sessions_file: Path = Field(default=Path(".data/sessions.json"), description="Session registry document")

    # Transcription
    groq_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("groq_api_key", "openai_api_key"),
        description="API key for audio transcription",
    )
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1", description="Transcription API base URL")
    transcription_model: str = Field(default="whisper-large-v3-turbo", description="Transcription model")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("telegram_bot_token", "codex_model", "system_prompt", "groq_api_key", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("codex_sandbox", mode="before")
    @classmethod
    def _parse_sandbox(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() in SANDBOX_MODES:
            return value.strip()
        return DEFAULT_SANDBOX

    @field_validator("max_reply_chars", mode="before")
    @classmethod
    def _parse_max_reply_chars(cls, value: Any) -> int:
        try:
            parsed = int(float(value))
        except (TypeError, ValueError):
            return DEFAULT_MAX_REPLY_CHARS
        if parsed < MIN_REPLY_CHARS or parsed > MAX_REPLY_CHARS:
            return DEFAULT_MAX_REPLY_CHARS
        return parsed

    @field_validator("codex_timeout_seconds", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> float | None:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        parsed = float(value)
        return parsed if parsed > 0 else None

    @field_validator("codex_cwd", "sessions_file", mode="after")
    @classmethod
    def _resolve_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def allowed_chats(self) -> set[int]:
        """Parsed allow-list; tokens that are not integers are ignored."""
        chats: set[int] = set()
        for token in self.allowed_chat_ids.split(","):
            token = token.strip()
            if not token:
                continue
            try:
                chats.add(int(token))
            except ValueError:
                continue
        return chats


def load_settings(**overrides: Any) -> Settings:
    """Load settings from the environment and `.env`, applying explicit overrides."""
    return Settings(**overrides)
