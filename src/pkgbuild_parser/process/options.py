"""Options controlling how the evaluator process is run."""

from __future__ import annotations

import os
import select
from dataclasses import dataclass
from enum import Enum


class SchedulingStrategy(str, Enum):
    """How the three pipe responsibilities are interleaved."""

    # Feeder and both drains as independent asyncio tasks
    TASKS = "tasks"
    # One selector loop over non-blocking pipes, run in a worker thread
    SELECT = "select"


@dataclass
class ParserOptions:
    """Runtime options for one RecipeParser."""

    interpreter: str = "/bin/bash"
    work_dir: str | None = None
    # Merged over os.environ; None inherits the environment unchanged
    env: dict[str, str] | None = None

    strategy: SchedulingStrategy = SchedulingStrategy.TASKS
    # Seconds for the whole batch; None leaves it unbounded
    deadline: float | None = None
    chunk_size: int = select.PIPE_BUF
    # Seconds between SIGTERM and SIGKILL
    terminate_grace: float = 5.0

    def __post_init__(self) -> None:
        self.strategy = SchedulingStrategy(self.strategy)
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError(f"deadline must be positive, got {self.deadline}")

    def build_env(self) -> dict[str, str] | None:
        if not self.env:
            return None
        return {**os.environ, **self.env}
