"""Single-loop strategy: one selector over non-blocking pipes.

All three pipes are serviced by one loop doing bounded reads and writes
of ``chunk_size`` bytes, so no pipe is drained ahead of another. The
loop blocks, so it runs in the event loop's default executor.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import selectors
import signal
import subprocess
import threading

from ..errors import LaunchError
from ..protocol.decoder import ProtocolDecoder
from .base import EvaluatorSession, signal_group
from .options import ParserOptions

logger = logging.getLogger(__name__)

# Seconds between checks of the stop flag while no pipe is ready
POLL_INTERVAL = 0.1


def pump(
    process: subprocess.Popen,
    payload: bytes,
    decoder: ProtocolDecoder,
    chunk_size: int,
    diagnostics: bytearray,
    stop: threading.Event,
) -> None:
    """Interleave writes to stdin with reads from stdout and stderr until EOF."""
    stdin, stdout, stderr = process.stdin, process.stdout, process.stderr
    assert stdin and stdout and stderr
    for stream in (stdin, stdout, stderr):
        os.set_blocking(stream.fileno(), False)

    written = 0
    with selectors.DefaultSelector() as selector:
        if payload:
            selector.register(stdin, selectors.EVENT_WRITE)
        else:
            stdin.close()
        selector.register(stdout, selectors.EVENT_READ)
        selector.register(stderr, selectors.EVENT_READ)

        while selector.get_map() and not stop.is_set():
            for key, _ in selector.select(timeout=POLL_INTERVAL):
                stream = key.fileobj
                if stream is stdin:
                    try:
                        written += os.write(
                            stdin.fileno(), payload[written : written + chunk_size]
                        )
                    except BlockingIOError:
                        continue
                    except (BrokenPipeError, ConnectionResetError):
                        logger.debug("Evaluator closed its stdin early")
                        written = len(payload)
                    if written >= len(payload):
                        selector.unregister(stdin)
                        stdin.close()
                    continue

                try:
                    data = os.read(stream.fileno(), chunk_size)  # type: ignore[union-attr]
                except BlockingIOError:
                    continue
                if not data:
                    selector.unregister(stream)
                    stream.close()  # type: ignore[union-attr]
                elif stream is stdout:
                    logger.debug(f"[evaluator stdout] {len(data)} bytes")
                    decoder.feed(data)
                else:
                    diagnostics.extend(data)


class SelectorSession(EvaluatorSession):
    """Evaluator driven by a selector loop in a worker thread."""

    def __init__(self, script: str, options: ParserOptions):
        super().__init__(script, options)
        self._process: subprocess.Popen | None = None
        self._diagnostics = bytearray()
        self._stop = threading.Event()
        self._pump: asyncio.Future | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        try:
            self._process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.options.work_dir,
                env=self.options.build_env(),
                bufsize=0,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchError(self.options.interpreter, str(e)) from e
        logger.info(f"Launched evaluator: {' '.join(self.command)} (pid={self._process.pid})")

    async def communicate(self, payload: bytes, decoder: ProtocolDecoder) -> bytes:
        if not self._process:
            raise RuntimeError("Evaluator not started")

        loop = asyncio.get_running_loop()
        self._pump = loop.run_in_executor(
            None,
            pump,
            self._process,
            payload,
            decoder,
            self.options.chunk_size,
            self._diagnostics,
            self._stop,
        )
        try:
            # Shielded so a cancelled caller can still join the thread in terminate()
            await asyncio.shield(self._pump)
        finally:
            self._close_pipes()
        return bytes(self._diagnostics)

    def partial_diagnostics(self) -> bytes:
        return bytes(self._diagnostics)

    def _close_pipes(self) -> None:
        if self._pump is not None and not self._pump.done():
            return
        assert self._process
        for stream in (self._process.stdin, self._process.stdout, self._process.stderr):
            if stream is not None:
                with contextlib.suppress(OSError):
                    stream.close()

    async def _join_pump(self) -> None:
        if self._pump is None:
            return
        self._stop.set()
        try:
            await self._pump
        except Exception as e:
            # Already surfaced by communicate(); only the thread is joined here
            logger.debug(f"Selector loop stopped with {e!r}")
        self._close_pipes()

    async def wait(self) -> int:
        assert self._process
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._process.wait)

    async def terminate(self) -> None:
        process = self._process
        if process is None:
            return
        # Also reaches subshells still holding the pipes after the evaluator died
        signal_group(process.pid, signal.SIGTERM)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, process.wait, self.options.terminate_grace)
        except subprocess.TimeoutExpired:
            signal_group(process.pid, signal.SIGKILL)
            await loop.run_in_executor(None, process.wait)
        logger.info(f"Evaluator terminated (pid={process.pid})")
        await self._join_pump()
