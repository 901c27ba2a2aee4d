"""Batch evaluation of recipes through one evaluator process.

Every ``parse_batch`` call spawns exactly one evaluator, feeds it every
path and returns one RecipeResult per path, in input order. Records are
matched to paths by position only: several recipes may share a pkgbase.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from typing import Any

from ..errors import AbortedError, BatchTimeoutError, ParseError, ProtocolError
from ..models import RecipeResult
from ..protocol.decoder import DecodedRecord, ProtocolDecoder
from ..script import ScriptArtifact, ScriptConfig, build
from .base import EvaluatorSession
from .options import ParserOptions, SchedulingStrategy
from .selector import SelectorSession
from .tasks import TaskSession

logger = logging.getLogger(__name__)

SESSION_TYPES: dict[SchedulingStrategy, type[EvaluatorSession]] = {
    SchedulingStrategy.TASKS: TaskSession,
    SchedulingStrategy.SELECT: SelectorSession,
}


def _attach(paths: list[str], records: list[DecodedRecord]) -> list[RecipeResult]:
    results = []
    for path, record in zip(paths, records):
        if isinstance(record, ParseError):
            results.append(RecipeResult(path, error=record.with_path(path)))
        else:
            results.append(RecipeResult(path, recipe=record))
    return results


def _encode_paths(paths: list[str]) -> bytes:
    for path in paths:
        if "\n" in path:
            raise ValueError(f"Recipe path contains a newline: {path!r}")
    return "".join(f"{path}\n" for path in paths).encode("utf-8", errors="surrogateescape")


class RecipeParser:
    """Evaluate recipes with a generated evaluator script.

    Example:
        with RecipeParser.create() as parser:
            results = await parser.parse_batch(["foo/PKGBUILD", "bar/PKGBUILD"])
    """

    def __init__(
        self,
        script: ScriptArtifact | str | os.PathLike[str],
        options: ParserOptions | None = None,
    ):
        self.script = script
        self.options = options or ParserOptions()
        self._owned: ScriptArtifact | None = None

    @classmethod
    def create(
        cls,
        config: ScriptConfig | None = None,
        options: ParserOptions | None = None,
    ) -> RecipeParser:
        """Build a temporary script for ``config`` and own it until ``close()``."""
        if config is None:
            config = ScriptConfig.from_env()
        artifact = build(config)
        parser = cls(artifact, options)
        parser._owned = artifact
        return parser

    def close(self) -> None:
        if self._owned is not None:
            self._owned.close()
            self._owned = None

    def __enter__(self) -> RecipeParser:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    async def __aenter__(self) -> RecipeParser:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def _session(self) -> EvaluatorSession:
        session_type = SESSION_TYPES[self.options.strategy]
        return session_type(os.fspath(self.script), self.options)

    async def parse_batch(self, paths: Iterable[str | os.PathLike[str]]) -> list[RecipeResult]:
        """Evaluate every path with one evaluator process.

        Returns:
            One result per path, in input order

        Raises:
            ValueError: If a path contains a newline
            LaunchError: If the evaluator could not be started
            AbortedError: If the evaluator exited before emitting every record
            ProtocolError: If the evaluator output could not be framed
            BatchTimeoutError: If the deadline passed
        """
        paths = [os.fspath(path) for path in paths]
        payload = _encode_paths(paths)
        if not paths:
            return []

        decoder = ProtocolDecoder()
        session = self._session()
        await session.start()

        try:
            if self.options.deadline is None:
                diagnostics, returncode = await self._run(session, payload, decoder)
            else:
                diagnostics, returncode = await asyncio.wait_for(
                    self._run(session, payload, decoder), timeout=self.options.deadline
                )
        except TimeoutError:
            await session.terminate()
            completed = _attach(paths, decoder.take())
            logger.warning(
                f"Evaluator exceeded the {self.options.deadline}s deadline "
                f"after {len(completed)} of {len(paths)} records"
            )
            partial = session.partial_diagnostics().decode("utf-8", errors="replace")
            if partial.strip():
                logger.warning(f"[evaluator stderr] {partial.rstrip()}")
            raise BatchTimeoutError(self.options.deadline or 0.0, completed) from None
        except (Exception, asyncio.CancelledError):
            await session.terminate()
            raise

        text = diagnostics.decode("utf-8", errors="replace")
        if text.strip():
            logger.warning(f"[evaluator stderr] {text.rstrip()}")

        records = decoder.take()
        if len(records) < len(paths):
            raise AbortedError(returncode, text, expected=len(paths), received=len(records))
        if len(records) > len(paths):
            raise ProtocolError(f"Evaluator emitted {len(records)} records for {len(paths)} paths")
        decoder.close()

        if returncode != 0:
            logger.warning(f"Evaluator exited with status {returncode} after a complete batch")
        else:
            logger.debug(f"Evaluator finished {len(paths)} records (pid={session.pid})")
        return _attach(paths, records)

    async def _run(
        self, session: EvaluatorSession, payload: bytes, decoder: ProtocolDecoder
    ) -> tuple[bytes, int]:
        diagnostics = await session.communicate(payload, decoder)
        returncode = await session.wait()
        return diagnostics, returncode

    async def parse_one(self, path: str | os.PathLike[str]) -> RecipeResult:
        """Evaluate a single recipe."""
        results = await self.parse_batch([path])
        return results[0]


def parse_batch(
    paths: Iterable[str | os.PathLike[str]],
    config: ScriptConfig | None = None,
    options: ParserOptions | None = None,
) -> list[RecipeResult]:
    """Blocking helper: build a temporary script, evaluate ``paths``, clean up."""

    async def run() -> list[RecipeResult]:
        with RecipeParser.create(config, options) as parser:
            return await parser.parse_batch(paths)

    return asyncio.run(run())


def parse_one(
    path: str | os.PathLike[str],
    config: ScriptConfig | None = None,
    options: ParserOptions | None = None,
) -> RecipeResult:
    """Blocking helper for a single recipe."""
    return parse_batch([path], config, options)[0]
