"""Audio transcription through an OpenAI-compatible API."""

from __future__ import annotations

from pathlib import Path

from loguru import logger
from openai import AsyncOpenAI, OpenAIError

from codex_relay.errors import TranscriptionError


class Transcriber:
    def __init__(self, *, api_key: str | None, base_url: str, model: str) -> None:
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url) if api_key else None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def transcribe(self, path: Path) -> str:
        if self._client is None:
            raise TranscriptionError("Voice input requires GROQ_API_KEY.")
        try:
            with path.open("rb") as handle:
                result = await self._client.audio.transcriptions.create(model=self.model, file=handle)
        except OpenAIError as exc:
            logger.warning("transcription.error model={} error={}", self.model, exc)
            raise TranscriptionError(f"Audio transcription failed: {exc}") from exc
        except OSError as exc:
            raise TranscriptionError(f"Audio file could not be read: {exc}") from exc

        text = (result.text or "").strip()
        if not text:
            raise TranscriptionError("Audio transcription returned empty text.")
        logger.info("transcription.done chars={}", len(text))
        return text
