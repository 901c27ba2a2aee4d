"""Common lifecycle of one evaluator process.

A session owns exactly one child process. ``start`` launches it,
``communicate`` feeds the payload and drains both output pipes until
EOF, and ``terminate`` stops it (SIGTERM, then SIGKILL after the grace
period). Strategies differ only in how ``communicate`` interleaves the
pipes.
"""

from __future__ import annotations

import contextlib
import os
from abc import ABC, abstractmethod

from ..protocol.decoder import ProtocolDecoder
from .options import ParserOptions


class EvaluatorSession(ABC):
    """One evaluator process and its three pipes."""

    def __init__(self, script: str, options: ParserOptions):
        self.script = script
        self.options = options

    @property
    def command(self) -> list[str]:
        return [self.options.interpreter, self.script]

    @property
    @abstractmethod
    def pid(self) -> int | None:
        """Process id once started."""

    @property
    @abstractmethod
    def returncode(self) -> int | None:
        """Exit status once reaped."""

    @abstractmethod
    async def start(self) -> None:
        """Launch the evaluator.

        Raises:
            LaunchError: If the process could not be created
        """

    @abstractmethod
    async def communicate(self, payload: bytes, decoder: ProtocolDecoder) -> bytes:
        """Write ``payload``, feed stdout to ``decoder`` and collect stderr.

        Returns when both output pipes reached EOF.

        Returns:
            Everything the evaluator wrote to stderr
        """

    @abstractmethod
    async def wait(self) -> int:
        """Reap the process and return its exit status."""

    @abstractmethod
    async def terminate(self) -> None:
        """Stop the process if it is still running and reap it."""

    def partial_diagnostics(self) -> bytes:
        """Stderr collected so far, for errors raised mid-communication."""
        return b""


def signal_group(pid: int, sig: int) -> None:
    """Signal the evaluator and every subshell it spawned.

    Evaluators run in their own session, so the process group id is the
    evaluator's pid.
    """
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pid, sig)
