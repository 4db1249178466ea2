"""Run one agent turn as a subprocess."""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from codex_relay.agent.events import LineSource, TurnStream
from codex_relay.errors import AgentProcessError, AgentTimeoutError, AgentUnavailableError

FALLBACK_REPLY = "Agent completed but returned an empty message."
OUTPUT_FILE_NAME = "assistant-message.txt"
SCRATCH_PREFIX = "codex-relay-"
# Single JSON events can carry whole command outputs.
STREAM_LIMIT = 16 * 1024 * 1024
VERSION_CHECK_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class AgentConfig:
    """Agent process config."""

    binary: str = "codex"
    cwd: Path | None = None
    sandbox: str = "workspace-write"
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class TurnRequest:
    prompt: str
    session_id: str | None = None
    attachments: tuple[Path, ...] = ()


@dataclass(frozen=True)
class TurnResult:
    reply: str
    session_id: str | None = None


def build_args(config: AgentConfig, request: TurnRequest, output_file: Path) -> list[str]:
    """Build the agent argument vector for one turn; the prompt is always last."""
    args = ["exec", "resume"] if request.session_id else ["exec"]
    args += ["--skip-git-repo-check", "--sandbox", config.sandbox, "--json", "--color", "never"]
    args += ["--output-last-message", str(output_file)]
    if config.model:
        args += ["--model", config.model]
    for attachment in request.attachments:
        args += ["--image", str(attachment)]
    if request.session_id:
        args.append(request.session_id)
    args.append(request.prompt)
    return args


class TurnExecutor:
    """Spawn the agent for a turn, parse its events and collect the final reply."""

    def __init__(self, config: AgentConfig) -> None:
        self.config = config

    async def run(self, request: TurnRequest) -> TurnResult:
        scratch = Path(tempfile.mkdtemp(prefix=SCRATCH_PREFIX))
        try:
            return await self._run_in(scratch, request)
        finally:
            _remove_tree(scratch)

    async def _run_in(self, scratch: Path, request: TurnRequest) -> TurnResult:
        output_file = scratch / OUTPUT_FILE_NAME
        args = build_args(self.config, request, output_file)
        logger.info(
            "executor.turn.start resume={} attachments={} sandbox={}",
            bool(request.session_id),
            len(request.attachments),
            self.config.sandbox,
        )
        process = await self._spawn(args)
        stream = TurnStream()
        try:
            exit_code = await self._consume(process, stream)
        finally:
            if process.returncode is None:
                await _kill(process)

        stream.terminate(exit_code)
        reply = _read_reply(output_file)
        if exit_code != 0 and not reply:
            message = stream.failure_message()
            logger.warning("executor.turn.failed exit_code={} message={}", exit_code, message)
            raise AgentProcessError(message, exit_code=exit_code)

        logger.info(
            "executor.turn.done exit_code={} reply_chars={} session={}",
            exit_code,
            len(reply),
            stream.session_id or "",
        )
        return TurnResult(reply=reply or FALLBACK_REPLY, session_id=stream.session_id)

    async def _spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                self.config.binary,
                *args,
                cwd=str(self.config.cwd) if self.config.cwd else None,
                env=os.environ.copy(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            logger.error("executor.spawn.error binary={} error={}", self.config.binary, exc)
            raise AgentUnavailableError(f"Failed to start agent ({self.config.binary}): {exc}") from exc

    async def _consume(self, process: asyncio.subprocess.Process, stream: TurnStream) -> int:
        async def _pump(reader: asyncio.StreamReader | None, source: LineSource) -> None:
            if reader is None:
                return
            while True:
                try:
                    raw = await reader.readline()
                except ValueError as exc:
                    # readline drops the buffered part of an oversized line before raising.
                    logger.warning("executor.stream.line_too_long source={} error={}", source, exc)
                    continue
                if not raw:
                    return
                stream.feed(raw.decode("utf-8", errors="replace"), source)

        async def _wait() -> int:
            await asyncio.gather(_pump(process.stdout, "stdout"), _pump(process.stderr, "stderr"))
            return await process.wait()

        timeout = self.config.timeout_seconds
        if not timeout or timeout <= 0:
            return await _wait()
        try:
            async with asyncio.timeout(timeout):
                return await _wait()
        except TimeoutError as exc:
            logger.warning("executor.turn.timeout timeout_seconds={}", timeout)
            raise AgentTimeoutError(timeout) from exc

    async def verify(self) -> str:
        """Check that the agent binary runs; return its version banner."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.config.binary,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise AgentUnavailableError(
                f"Failed to execute agent CLI ({self.config.binary}). Install it and ensure it is in PATH."
            ) from exc
        try:
            async with asyncio.timeout(VERSION_CHECK_TIMEOUT_SECONDS):
                stdout_bytes, stderr_bytes = await process.communicate()
        except TimeoutError as exc:
            await _kill(process)
            raise AgentUnavailableError(f"Agent CLI ({self.config.binary}) did not answer --version.") from exc
        if process.returncode != 0:
            detail = (stderr_bytes or stdout_bytes or b"").decode("utf-8", errors="replace").strip()
            raise AgentUnavailableError(
                f"Agent CLI ({self.config.binary}) exited with status {process.returncode}: {detail or '(empty)'}"
            )
        return (stdout_bytes or b"").decode("utf-8", errors="replace").strip()


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


def _read_reply(output_file: Path) -> str:
    try:
        return output_file.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""
    except OSError as exc:
        logger.warning("executor.reply.read_error path={} error={}", output_file, exc)
        return ""


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("executor.cleanup.error path={} error={}", path, exc)
