"""Telegram channel adapter."""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

from loguru import logger
from telegram import Bot, Message, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters
from telegramify_markdown import markdownify as md

from codex_relay.app.runtime import RelayRuntime
from codex_relay.channels.base import BaseChannel
from codex_relay.channels.chunking import split_reply
from codex_relay.config import Settings
from codex_relay.errors import AttachmentFetchError, ConfigurationError, EmptyMessageError, RelayError
from codex_relay.logging_utils import chat_context
from codex_relay.types import InboundPayload, assemble_prompt

UNAUTHORIZED_REPLY = "This bot is restricted. Add your chat ID to ALLOWED_CHAT_IDS."
UNKNOWN_ERROR_REPLY = "Unknown error while handling your request."
DOWNLOAD_PREFIX = "codex-relay-file-"
TYPING_INTERVAL_SECONDS = 4

INBOUND_FILTER = (
    filters.TEXT | filters.CAPTION | filters.PHOTO | filters.VOICE | filters.AUDIO | filters.Document.IMAGE
) & ~filters.COMMAND


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram adapter config."""

    token: str
    allow_chats: set[int]
    max_reply_chars: int = 3800
    markdown: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> TelegramConfig:
        if not settings.telegram_bot_token:
            raise ConfigurationError("Missing required environment variable: TELEGRAM_BOT_TOKEN")
        return cls(
            token=settings.telegram_bot_token,
            allow_chats=settings.allowed_chats,
            max_reply_chars=settings.max_reply_chars,
            markdown=settings.telegram_markdown,
        )


def normalize_extension(file_path: str, fallback_extension: str) -> str:
    suffix = Path(file_path).suffix.lower()
    if not suffix:
        return f".{fallback_extension}"
    # Voice notes arrive as .oga; transcription APIs only accept .ogg.
    if suffix == ".oga":
        return ".ogg"
    return suffix


class TelegramChannel(BaseChannel):
    """Telegram adapter using long polling mode."""

    name = "telegram"

    def __init__(self, runtime: RelayRuntime, config: TelegramConfig) -> None:
        super().__init__(runtime)
        self._config = config
        self._app: Any = None
        self._running = False
        self._typing_tasks: dict[str, asyncio.Task[None]] = {}

    async def start(self) -> None:
        logger.info("telegram.channel.start allow_chats_count={}", len(self._config.allow_chats))
        self._running = True
        self._app = Application.builder().token(self._config.token).build()
        self._app.add_handler(CommandHandler("start", self._on_start))
        self._app.add_handler(CommandHandler("help", self._on_help))
        self._app.add_handler(CommandHandler(["new", "reset"], self._on_reset))
        self._app.add_handler(CommandHandler("session", self._on_session))
        self._app.add_handler(MessageHandler(INBOUND_FILTER, self._on_message, block=False))
        self._app.add_error_handler(self._on_error)
        await self._app.initialize()
        me = await self._app.bot.get_me()
        logger.info("telegram.channel.bot username={} cwd={}", me.username, self.runtime.settings.codex_cwd)
        await self._app.start()
        updater = self._app.updater
        if updater is None:
            return
        await updater.start_polling(drop_pending_updates=True, allowed_updates=["message"])
        logger.info("telegram.channel.polling")
        while self._running:
            await asyncio.sleep(0.5)

    async def stop(self) -> None:
        self._running = False
        for task in self._typing_tasks.values():
            task.cancel()
        self._typing_tasks.clear()
        if self._app is None:
            return
        updater = self._app.updater
        if updater is not None and updater.running:
            await updater.stop()
        if self._app.running:
            await self._app.stop()
        await self._app.shutdown()
        self._app = None
        logger.info("telegram.channel.stopped")

    async def send(self, chat_id: str, text: str) -> None:
        if self._app is None:
            return
        for segment in split_reply(text, self._config.max_reply_chars):
            if segment:
                await self._send_segment(int(chat_id), segment)

    async def _send_segment(self, chat_id: int, segment: str) -> None:
        bot = self._app.bot
        if not self._config.markdown:
            await bot.send_message(chat_id=chat_id, text=segment)
            return
        try:
            await bot.send_message(chat_id=chat_id, text=md(segment), parse_mode="MarkdownV2")
        except BadRequest as exc:
            logger.warning("telegram.channel.markdown_fallback chat_id={} error={}", chat_id, exc)
            await bot.send_message(chat_id=chat_id, text=segment, parse_mode=None)

    def _authorized(self, chat_id: int) -> bool:
        return not self._config.allow_chats or chat_id in self._config.allow_chats

    async def _guard(self, update: Update) -> Message | None:
        message = update.message
        if message is None:
            return None
        if not self._authorized(message.chat_id):
            logger.info("telegram.channel.denied chat_id={}", message.chat_id)
            await message.reply_text(UNAUTHORIZED_REPLY)
            return None
        return message

    async def _on_start(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = await self._guard(update)
        if message is None:
            return
        await message.reply_text(
            "Agent relay is running.\n"
            f"Voice transcription: {'on' if self.runtime.transcriber.enabled else 'off'}\n\n"
            "Commands:\n"
            "/new - reset the agent conversation for this chat\n"
            "/session - show the current agent session id"
        )

    async def _on_help(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = await self._guard(update)
        if message is None:
            return
        await message.reply_text(
            "Commands:\n"
            "/start - show startup message\n"
            "/new, /reset - start a fresh agent conversation\n"
            "/session - show the current agent session id\n"
            "/help - show this help\n\n"
            "Text, photos, image documents, voice and audio messages are relayed to the agent."
        )

    async def _on_reset(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = await self._guard(update)
        if message is None:
            return
        chat_id = str(message.chat_id)

        async def _reset() -> None:
            await self.runtime.reset(chat_id)
            await message.reply_text("Session reset. Next message starts a fresh agent conversation.")

        # Queued so a turn that is still running cannot re-save the old session afterwards.
        self.runtime.submit(chat_id, _reset)

    async def _on_session(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = await self._guard(update)
        if message is None:
            return
        session_id = await self.runtime.current_session(message.chat_id)
        await message.reply_text(f"Current session: {session_id}" if session_id else "No active session yet.")

    async def _on_message(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        message = await self._guard(update)
        if message is None:
            return
        if (message.text or "").startswith("/"):
            return
        chat_id = str(message.chat_id)
        logger.info(
            "telegram.channel.inbound chat_id={} message_id={} content={}",
            chat_id,
            message.message_id,
            (message.text or message.caption or "")[:100],
        )
        self.runtime.submit(chat_id, partial(self._run_turn, message))

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.opt(exception=context.error).error("telegram.channel.error update={}", update)

    async def _run_turn(self, message: Message) -> None:
        chat_id = str(message.chat_id)
        cleanup: list[Path] = []
        with chat_context(chat_id):
            self._start_typing(chat_id)
            try:
                payload = await self._build_payload(message, cleanup)
                result = await self.runtime.run_turn(chat_id, payload)
                await self.send(chat_id, result.reply)
            except RelayError as exc:
                logger.warning("telegram.turn.error kind={} error={}", type(exc).__name__, exc)
                await self._report(chat_id, f"Error: {exc}")
            except Exception:
                logger.exception("telegram.turn.unexpected_error")
                await self._report(chat_id, f"Error: {UNKNOWN_ERROR_REPLY}")
            finally:
                self._stop_typing(chat_id)
                _remove_paths(cleanup)

    async def _report(self, chat_id: str, text: str) -> None:
        if self._app is None:
            return
        try:
            await self._app.bot.send_message(chat_id=int(chat_id), text=text)
        except TelegramError:
            logger.exception("telegram.channel.report_failed chat_id={}", chat_id)

    async def _build_payload(self, message: Message, cleanup: list[Path]) -> InboundPayload:
        text = (message.text or message.caption or "").strip()
        parts = [text] if text else []
        attachments: list[Path] = []

        if message.photo:
            attachments.append(await self._download(message.photo[-1].file_id, "jpg", cleanup))
            if not text:
                parts.append("Analyze the attached image.")

        document = message.document
        if document is not None and (document.mime_type or "").startswith("image/"):
            attachments.append(await self._download(document.file_id, "jpg", cleanup))
            if not text:
                parts.append("Analyze the attached image document.")

        if message.voice is not None:
            local_path = await self._download(message.voice.file_id, "ogg", cleanup)
            parts.append(f"Voice transcript:\n{await self.runtime.transcribe(local_path)}")

        if message.audio is not None:
            local_path = await self._download(message.audio.file_id, "mp3", cleanup)
            parts.append(f"Audio transcript:\n{await self.runtime.transcribe(local_path)}")

        user_content = "\n\n".join(parts).strip()
        if not user_content:
            raise EmptyMessageError("Send text, image, or voice message.")

        return InboundPayload(
            prompt=assemble_prompt(user_content, self.runtime.settings.system_prompt),
            user_content=user_content,
            attachments=tuple(attachments),
        )

    async def _download(self, file_id: str, fallback_extension: str, cleanup: list[Path]) -> Path:
        bot: Bot = self._app.bot
        try:
            remote = await bot.get_file(file_id)
        except TelegramError as exc:
            raise AttachmentFetchError(f"Failed to fetch Telegram file: {exc}") from exc
        if not remote.file_path:
            raise AttachmentFetchError("Telegram did not provide a file path.")

        directory = Path(tempfile.mkdtemp(prefix=DOWNLOAD_PREFIX))
        cleanup.append(directory)
        local_path = directory / f"payload{normalize_extension(remote.file_path, fallback_extension)}"
        try:
            await remote.download_to_drive(custom_path=local_path)
        except (TelegramError, OSError) as exc:
            raise AttachmentFetchError(f"Failed to download Telegram file: {exc}") from exc
        logger.debug("telegram.channel.downloaded path={}", local_path)
        return local_path

    def _start_typing(self, chat_id: str) -> None:
        self._stop_typing(chat_id)
        self._typing_tasks[chat_id] = asyncio.create_task(self._typing_loop(chat_id))

    def _stop_typing(self, chat_id: str) -> None:
        task = self._typing_tasks.pop(chat_id, None)
        if task is not None:
            task.cancel()

    async def _typing_loop(self, chat_id: str) -> None:
        try:
            while self._app is not None:
                await self._app.bot.send_chat_action(chat_id=int(chat_id), action="typing")
                await asyncio.sleep(TYPING_INTERVAL_SECONDS)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("telegram.channel.typing_loop.error chat_id={}", chat_id)
            return


def _remove_paths(paths: list[Path]) -> None:
    for path in paths:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("telegram.channel.cleanup.error path={} error={}", path, exc)
