"""Multi-task strategy: feeder and drains as independent asyncio tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..errors import LaunchError
from ..protocol.decoder import ProtocolDecoder
from .base import EvaluatorSession, signal_group
from .options import ParserOptions

logger = logging.getLogger(__name__)


class TaskSession(EvaluatorSession):
    """Evaluator driven through asyncio subprocess pipes.

    The stream limit is the chunk size, so a slow decoder pauses the
    transport instead of buffering unbounded output.
    """

    def __init__(self, script: str, options: ParserOptions):
        super().__init__(script, options)
        self._process: asyncio.subprocess.Process | None = None
        self._diagnostics = bytearray()

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.options.work_dir,
                env=self.options.build_env(),
                limit=self.options.chunk_size,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchError(self.options.interpreter, str(e)) from e
        logger.info(f"Launched evaluator: {' '.join(self.command)} (pid={self._process.pid})")

    async def communicate(self, payload: bytes, decoder: ProtocolDecoder) -> bytes:
        if not self._process:
            raise RuntimeError("Evaluator not started")

        tasks = [
            asyncio.create_task(self._feed(payload), name="evaluator-feeder"),
            asyncio.create_task(self._drain_stdout(decoder), name="evaluator-stdout"),
            asyncio.create_task(self._drain_stderr(), name="evaluator-stderr"),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        await self._cancel(list(pending))
        for task in tasks:
            error = task.exception() if task in done else None
            if error is not None:
                raise error
        return bytes(self._diagnostics)

    async def _cancel(self, tasks: list[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _feed(self, payload: bytes) -> None:
        """Write the payload in chunks, then signal end of input."""
        assert self._process and self._process.stdin
        stdin = self._process.stdin
        chunk_size = self.options.chunk_size
        try:
            for offset in range(0, len(payload), chunk_size):
                stdin.write(payload[offset : offset + chunk_size])
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The evaluator died; the drains observe EOF and the record count tells
            logger.debug("Evaluator closed its stdin early")
        finally:
            stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await stdin.wait_closed()

    async def _drain_stdout(self, decoder: ProtocolDecoder) -> None:
        assert self._process and self._process.stdout
        while True:
            chunk = await self._process.stdout.read(self.options.chunk_size)
            if not chunk:
                break
            logger.debug(f"[evaluator stdout] {len(chunk)} bytes")
            decoder.feed(chunk)

    async def _drain_stderr(self) -> None:
        assert self._process and self._process.stderr
        while True:
            chunk = await self._process.stderr.read(self.options.chunk_size)
            if not chunk:
                break
            self._diagnostics.extend(chunk)

    def partial_diagnostics(self) -> bytes:
        return bytes(self._diagnostics)

    async def wait(self) -> int:
        assert self._process
        return await self._process.wait()

    async def terminate(self) -> None:
        process = self._process
        if process is None:
            return
        # Also reaches subshells still holding the pipes after the evaluator died
        signal_group(process.pid, signal.SIGTERM)
        # wait() only returns once both pipes hit EOF, so keep reading them
        discard = [
            asyncio.create_task(self._discard(stream))
            for stream in (process.stdout, process.stderr)
            if stream is not None
        ]
        try:
            await asyncio.wait_for(process.wait(), timeout=self.options.terminate_grace)
        except TimeoutError:
            signal_group(process.pid, signal.SIGKILL)
            await process.wait()
        finally:
            await self._cancel(discard)
        logger.info(f"Evaluator terminated (pid={process.pid})")

    async def _discard(self, stream: asyncio.StreamReader) -> None:
        while await stream.read(self.options.chunk_size):
            pass
