"""Domain exceptions for the remedy loop.

All domain-specific exceptions inherit from ``RemedyLoopError`` so callers
can catch the full family with a single ``except`` clause when needed.

These exceptions signal *programmer* errors (an unknown scenario, a missing
executor, an illegal status transition).  Operational failures such as a
fix attempt timing out are recorded in result objects instead.
"""

from __future__ import annotations

from typing import Any


class RemedyLoopError(Exception):
    """Base exception for all remedy loop errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class InvalidWorkTransition(RemedyLoopError):
    """Raised when a work item is asked to make a status transition it cannot.

    Status only moves forward: pending -> in-progress -> completed/escalated.
    """

    def __init__(
        self,
        message: str = "Invalid work status transition",
        work_id: str = "",
        current_status: str = "",
        attempted: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.work_id = work_id
        self.current_status = current_status
        self.attempted = attempted


class WorkNotFoundError(RemedyLoopError, KeyError):
    """Raised when a queue action names a work item the queue does not hold."""

    def __init__(
        self,
        work_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"Work item not in queue: {work_id}", details)
        self.work_id = work_id

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ScenarioNotFoundError(RemedyLoopError, KeyError):
    """Raised when a replay is requested for an unregistered scenario id."""

    def __init__(
        self,
        scenario_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"Scenario not found: {scenario_id}", details)
        self.scenario_id = scenario_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class ExecutorNotSetError(RemedyLoopError):
    """Raised when a replay is requested before ``set_executor`` was called."""

    def __init__(
        self,
        message: str = "No fix executor set. Call set_executor() first.",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class CycleNotFoundError(RemedyLoopError):
    """Raised when a fix cycle is completed without having been started."""

    def __init__(
        self,
        work_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"No in-progress cycle found for {work_id}", details)
        self.work_id = work_id
