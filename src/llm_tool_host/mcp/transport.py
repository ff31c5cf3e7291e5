"""
Stdio transport for MCP provider subprocesses.

One ``StdioTransport`` owns one provider process. Outgoing messages are
written to its stdin as newline-delimited JSON; every complete line read
from its stdout is decoded and handed to a single registered handler.
"""

import asyncio
import contextlib
import json
import logging
import os
from typing import Any, Callable, Mapping, Optional, Sequence

from .errors import TransportError

logger = logging.getLogger(__name__)

# Tool catalogs can be large; asyncio's default 64 KiB line limit is too small.
_DEFAULT_LINE_LIMIT = 4 * 1024 * 1024

MessageHandler = Callable[[Any], None]
ExitHook = Callable[[Optional[int]], None]


def encode_message(message: Any) -> bytes:
    """Serialize a message to one wire line.

    ``json.dumps`` never escapes ``/``, which some provider implementations
    reject, so the output is written as-is.
    """
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


class StdioTransport:
    """Newline-delimited JSON over a subprocess's stdin/stdout."""

    def __init__(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        env: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
        line_limit: int = _DEFAULT_LINE_LIMIT,
    ):
        """Initialize the transport. The process is spawned by ``start()``.

        Args:
            command: Executable launching the provider (e.g. "npx", "uvx")
            args: Arguments for the command
            env: Extra environment variables, merged over ``os.environ``
            name: Label used in log messages (defaults to the command)
            line_limit: Maximum size in bytes of one inbound message line
        """
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self.name = name or command
        self._line_limit = line_limit
        self._process: Optional[asyncio.subprocess.Process] = None
        self._message_handler: Optional[MessageHandler] = None
        self._exit_hook: Optional[ExitHook] = None
        self._exit_notified = False
        self._killed = False
        self._tasks: list[asyncio.Task] = []

    # Lifecycle

    async def start(self) -> None:
        """Spawn the provider subprocess and begin reading its output.

        Raises:
            TransportError: If the command cannot be executed, or the
                transport was already killed.
        """
        if self._killed:
            raise TransportError(f"Transport '{self.name}' has been killed")
        if self._process is not None:
            return

        merged_env = {**os.environ, **self.env}
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
                limit=self._line_limit,
            )
        except OSError as e:
            raise TransportError(
                f"Failed to start MCP server '{self.name}' ({self.command}): {e}"
            ) from e

        logger.debug("[%s] Started process pid=%s", self.name, self._process.pid)
        reader = asyncio.create_task(self._read_loop())
        self._tasks = [
            reader,
            asyncio.create_task(self._drain_stderr()),
            asyncio.create_task(self._wait_for_exit(reader)),
        ]

    def kill(self) -> None:
        """Close stdin, then forcibly terminate the process. Safe to call repeatedly."""
        if self._killed:
            return
        self._killed = True

        proc = self._process
        if proc is None:
            return

        if proc.stdin is not None:
            with contextlib.suppress(OSError, RuntimeError):
                proc.stdin.close()
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        logger.debug("[%s] Killed process pid=%s", self.name, proc.pid)

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None and self._process.returncode is None and not self._killed
        )

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process is not None else None

    # Message I/O

    def on_message(self, handler: MessageHandler) -> None:
        """Register the handler invoked once per decoded inbound message."""
        self._message_handler = handler

    def on_exit(self, hook: ExitHook) -> None:
        """Register the hook invoked exactly once with the exit code."""
        self._exit_hook = hook

    async def send(self, message: Any) -> None:
        """Write one message to the subprocess's stdin.

        Raises:
            TransportError: If the process is not running or the pipe is broken.
        """
        proc = self._process
        if not self.is_running or proc is None or proc.stdin is None:
            raise TransportError(f"MCP server '{self.name}' is not running")

        data = encode_message(message)
        logger.debug("[%s] --> %s", self.name, data.rstrip())
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, OSError) as e:
            raise TransportError(f"Failed to write to MCP server '{self.name}': {e}") from e

    async def _read_loop(self) -> None:
        stdout = self._process.stdout
        while True:
            try:
                line = await stdout.readline()
            except ValueError as e:
                # Oversized line; the reader has already skipped past it.
                logger.warning("[%s] Dropping oversized message: %s", self.name, e)
                continue
            if not line:
                break

            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            logger.debug("[%s] <-- %s", self.name, text)

            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("[%s] Dropping malformed message: %s", self.name, text[:200])
                continue

            handler = self._message_handler
            if handler is None:
                logger.debug("[%s] No message handler registered, dropping message", self.name)
                continue
            try:
                handler(message)
            except Exception:
                logger.exception("[%s] Message handler raised", self.name)

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        while True:
            try:
                line = await stderr.readline()
            except ValueError:
                continue
            if not line:
                break
            logger.debug("[%s] stderr: %s", self.name, line.decode("utf-8", errors="replace").rstrip())

    async def _wait_for_exit(self, reader: asyncio.Task) -> None:
        returncode = await self._process.wait()
        # Deliver any buffered output before announcing the exit.
        await asyncio.wait([reader])

        if self._killed:
            logger.debug("[%s] Process exited after kill (code=%s)", self.name, returncode)
        else:
            logger.info("[%s] Process exited with code %s", self.name, returncode)

        if self._exit_notified:
            return
        self._exit_notified = True
        hook = self._exit_hook
        if hook is None:
            return
        try:
            hook(returncode)
        except Exception:
            logger.exception("[%s] Exit hook raised", self.name)
