"""CLI for the relay."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger

from codex_relay.app import build_runtime, prepare_runtime
from codex_relay.app.runtime import RelayRuntime
from codex_relay.channels.base import BaseChannel
from codex_relay.channels.telegram import TelegramChannel, TelegramConfig
from codex_relay.errors import RelayError
from codex_relay.logging_utils import LogProfile, configure_logging
from codex_relay.types import InboundPayload, assemble_prompt

app = typer.Typer(name="codex-relay", help="Relay chat messages to a command-line coding agent.", add_completion=False)


def _exit_with_error(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def _runtime(log_profile: LogProfile = "default") -> RelayRuntime:
    try:
        runtime = build_runtime()
    except ValueError as exc:
        _exit_with_error(f"Invalid configuration: {exc}")
    configure_logging(level=runtime.settings.log_level, profile=log_profile)
    return runtime


async def _serve_channel(channel: BaseChannel) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop() -> None:
        logger.info("relay.stop.requested")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _request_stop)

    channel_task = asyncio.create_task(channel.start())
    stop_task = asyncio.create_task(stop_event.wait())
    try:
        done, _ = await asyncio.wait({channel_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if channel_task in done:
            channel_task.result()
    finally:
        stop_task.cancel()
        await channel.stop()
        if not channel_task.done():
            channel_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await channel_task
        await channel.runtime.aclose()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def _serve(runtime: RelayRuntime) -> None:
    await prepare_runtime(runtime)
    logger.info("relay.start cwd={} sandbox={}", runtime.settings.codex_cwd, runtime.settings.codex_sandbox)
    channel = TelegramChannel(runtime, TelegramConfig.from_settings(runtime.settings))
    await _serve_channel(channel)


@app.command()
def serve(
    rich_logs: bool = typer.Option(False, "--rich-logs", help="Render logs with rich"),
) -> None:
    """Run the Telegram relay until interrupted."""
    runtime = _runtime("rich" if rich_logs else "default")
    try:
        asyncio.run(_serve(runtime))
    except RelayError as exc:
        _exit_with_error(str(exc))


async def _ask(runtime: RelayRuntime, chat: str, prompt: str, images: list[Path]) -> tuple[str, str | None]:
    payload = InboundPayload(
        prompt=assemble_prompt(prompt, runtime.settings.system_prompt),
        user_content=prompt,
        attachments=tuple(path.resolve() for path in images),
    )
    result = await runtime.run_turn(chat, payload)
    return result.reply, result.session_id


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send to the agent"),
    chat: str = typer.Option("local", "--chat", "-c", help="Conversation key used for session continuity"),
    images: list[Path] = typer.Option([], "--image", "-i", help="Image to attach, repeatable"),  # noqa: B008
) -> None:
    """Run one turn through the agent and print the reply."""
    runtime = _runtime()
    try:
        reply, session_id = asyncio.run(_ask(runtime, chat, prompt, images))
    except RelayError as exc:
        _exit_with_error(f"Error: {exc}")
    typer.echo(reply)
    if session_id:
        typer.secho(f"session: {session_id}", fg=typer.colors.BRIGHT_BLACK, err=True)


@app.command()
def session(chat: str = typer.Argument(..., help="Conversation key")) -> None:
    """Show the stored agent session for a conversation."""
    runtime = _runtime()
    try:
        session_id = asyncio.run(runtime.current_session(chat))
    except RelayError as exc:
        _exit_with_error(str(exc))
    typer.echo(session_id or "No active session yet.")


@app.command()
def reset(chat: str = typer.Argument(..., help="Conversation key")) -> None:
    """Forget the stored agent session for a conversation."""
    runtime = _runtime()
    try:
        asyncio.run(runtime.reset(chat))
    except RelayError as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Session reset for {chat}.")
