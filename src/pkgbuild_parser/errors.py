"""Error taxonomy for the recipe parsing pipeline.

Batch-fatal errors (LaunchError, AbortedError, ProtocolError,
BatchTimeoutError) fail the whole ``parse_batch`` call. ParseError is
scoped to a single recipe and is returned in the result sequence at that
recipe's position instead of being raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import RecipeResult


class PkgbuildParserError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(PkgbuildParserError):
    """The script configuration is structurally invalid."""


class LaunchError(PkgbuildParserError):
    """The evaluator process could not be started."""

    def __init__(self, interpreter: str, reason: str):
        self.interpreter = interpreter
        self.reason = reason
        super().__init__(f"Failed to launch evaluator '{interpreter}': {reason}")


class AbortedError(PkgbuildParserError):
    """The evaluator exited before every recipe in the batch was emitted."""

    def __init__(
        self,
        returncode: int | None,
        diagnostics: str,
        expected: int,
        received: int,
    ):
        self.returncode = returncode
        self.diagnostics = diagnostics
        self.expected = expected
        self.received = received
        message = (
            f"Evaluator exited with status {returncode} after {received} of "
            f"{expected} records"
        )
        if diagnostics:
            message += f"\n{diagnostics.rstrip()}"
        super().__init__(message)


class ProtocolError(PkgbuildParserError):
    """The evaluator output and the decoder have desynchronized."""

    def __init__(self, message: str, line_number: int | None = None, line: str | None = None):
        self.line_number = line_number
        self.line = line
        if line_number is not None:
            message = f"{message} (line {line_number}: {line!r})"
        super().__init__(message)


class ParseError(PkgbuildParserError):
    """A single recipe was rejected, either by the evaluator or on decode.

    ``status`` is the evaluator failure status for evaluator-side
    rejections and ``None`` for records that failed decode validation.
    """

    def __init__(self, message: str, status: int | None = None, path: str | None = None):
        self.message = message
        self.status = status
        self.path = path
        super().__init__(message)

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message

    def with_path(self, path: str) -> ParseError:
        """Return a copy of this error attributed to ``path``."""
        return ParseError(self.message, status=self.status, path=path)


class BatchTimeoutError(PkgbuildParserError, TimeoutError):
    """The batch deadline passed and the evaluator was terminated.

    ``completed`` holds the results for records that were fully decoded
    before cancellation, in input order.
    """

    def __init__(self, deadline: float, completed: list[RecipeResult]):
        self.deadline = deadline
        self.completed = completed
        super().__init__(
            f"Batch deadline of {deadline:g}s exceeded after {len(completed)} records"
        )
