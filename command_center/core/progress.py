"""
Progress sources for the execution engine.

A progress source drives one execution: it yields ``ProgressUpdate`` objects
until the run is done. The engine owns all state; sources only report.

v0: TimedProgressSource - fixed number of evenly spaced steps, always succeeds
v1+: Sources backed by a real Claude process
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from ..tracker.execution import Execution

DEFAULT_FILES_MODIFIED = ["file1.ts", "file2.ts"]


@dataclass
class ProgressUpdate:
    """One step reported by a progress source."""

    progress: int
    log: Optional[str] = None

    # Set on the final update only
    result: Optional[Dict[str, Any]] = None


class ProgressSource(ABC):
    """Abstract base class for progress sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name for logging and identification."""
        pass

    @abstractmethod
    def stream(self, execution: Execution) -> AsyncIterator[ProgressUpdate]:
        """Produce updates for one execution.

        Raising from the iterator fails the execution with the error message.
        Exhausting it without reaching 100 completes the execution.
        """
        pass


@dataclass
class TimedProgressSource(ProgressSource):
    """Reference source: ``steps`` updates ``step_delay_seconds`` apart.

    Each step adds ``100 / steps`` percent and logs ``Step i completed``.
    The final step carries a fixed success payload.
    """

    steps: int = 10
    step_delay_seconds: float = 0.5
    files_modified: List[str] = field(default_factory=lambda: list(DEFAULT_FILES_MODIFIED))
    tests_run: int = 5
    coverage: int = 85

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("steps must be at least 1")
        if self.step_delay_seconds < 0:
            raise ValueError("step_delay_seconds must not be negative")

    @property
    def name(self) -> str:
        return "timed"

    def final_result(self) -> Dict[str, Any]:
        return {
            "success": True,
            "files_modified": list(self.files_modified),
            "tests_run": self.tests_run,
            "coverage": self.coverage,
        }

    async def stream(self, execution: Execution) -> AsyncIterator[ProgressUpdate]:
        for step in range(1, self.steps + 1):
            await asyncio.sleep(self.step_delay_seconds)
            progress = (step * 100) // self.steps
            yield ProgressUpdate(
                progress=progress,
                log=f"Step {step} completed",
                result=self.final_result() if step == self.steps else None,
            )
