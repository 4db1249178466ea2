"""Durable conversation to agent session mapping."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from loguru import logger

from codex_relay.errors import RegistryPersistenceError


class SessionRegistry:
    """JSON-file backed map of conversation key to the last known agent session id.

    The document is loaded lazily on first access and cached. Mutations apply to
    memory first; every mutation then rewrites the whole document under a single
    writer lock, so writes reach disk in mutation order.
    """

    def __init__(self, file_path: str | Path) -> None:
        self.file_path = Path(file_path)
        self._sessions: dict[str, str] = {}
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            self._sessions = await asyncio.to_thread(self._read_document)
            self._loaded = True
            logger.info("sessions.loaded path={} count={}", self.file_path, len(self._sessions))

    async def get(self, key: object) -> str | None:
        await self.load()
        return self._sessions.get(str(key))

    async def set(self, key: object, session_id: str) -> None:
        await self.load()
        self._sessions[str(key)] = session_id
        await self._persist_logged()

    async def clear(self, key: object) -> None:
        await self.load()
        self._sessions.pop(str(key), None)
        await self._persist_logged()

    async def snapshot(self) -> dict[str, str]:
        await self.load()
        return dict(self._sessions)

    async def _persist_logged(self) -> None:
        try:
            await self._persist()
        except RegistryPersistenceError:
            logger.exception("sessions.persist.error path={}", self.file_path)

    async def _persist(self) -> None:
        async with self._write_lock:
            document = dict(self._sessions)
            try:
                await asyncio.to_thread(self._write_document, document)
            except OSError as exc:
                raise RegistryPersistenceError(f"Failed to write session registry {self.file_path}: {exc}") from exc

    def _read_document(self) -> dict[str, str]:
        try:
            payload = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            raise RegistryPersistenceError(f"Failed to read session registry {self.file_path}: {exc}") from exc
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise RegistryPersistenceError(f"Session registry {self.file_path} is not valid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise RegistryPersistenceError(f"Session registry {self.file_path} must be a JSON object")
        return {str(key): value for key, value in parsed.items() if isinstance(value, str) and value}

    def _write_document(self, document: dict[str, str]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document, ensure_ascii=False, indent=2)
        staging = self.file_path.with_name(f"{self.file_path.name}.tmp")
        try:
            staging.write_text(payload + "\n", encoding="utf-8")
            staging.replace(self.file_path)
        except OSError:
            staging.unlink(missing_ok=True)
            raise
