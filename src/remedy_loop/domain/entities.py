"""Domain entities for the remedy loop.

Entities have *identity* (a unique id that persists across mutations) and a
mutable lifecycle.  ``DiscoveredWork`` is owned by the work queue and moves
forward through its statuses in place; it never re-enters ``PENDING``.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field

from .enums import AutomationTier, SuggestedWorkflow, WorkPriority, WorkSource, WorkStatus
from .exceptions import InvalidWorkTransition
from .values import Diagnosis

# ---------------------------------------------------------------------------
# DiscoveredWork entity
# ---------------------------------------------------------------------------

@dataclass
class DiscoveredWork:
    """A unit of work created from exactly one ``Diagnosis``.

    Classification fields (``priority``, ``tier``, ``suggested_workflow``)
    are fixed at creation.  ``status`` and the timestamps/resolution that
    accompany it change only through :meth:`start`, :meth:`complete`, and
    :meth:`escalate`, each of which rejects an out-of-order transition.
    """

    diagnosis: Diagnosis
    priority: WorkPriority = WorkPriority.LOW
    tier: AutomationTier = AutomationTier.INVESTIGATION
    suggested_workflow: SuggestedWorkflow = SuggestedWorkflow.INVESTIGATION
    summary: str = ""
    description: str = ""
    source: WorkSource = WorkSource.VALIDATION_FAILURE
    id: str = field(default_factory=lambda: f"work-{uuid.uuid4().hex[:12]}")
    discovered_at: float = field(default_factory=time.time)
    resource_sids: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    status: WorkStatus = WorkStatus.PENDING
    assigned_to: str | None = None
    started_at: float | None = None
    completed_at: float | None = None
    resolution: str | None = None

    # -- lifecycle transitions ------------------------------------------------

    def start(self, assigned_to: str | None = None) -> None:
        """pending -> in-progress."""
        if self.status != WorkStatus.PENDING:
            raise self._rejected(WorkStatus.IN_PROGRESS)
        self.status = WorkStatus.IN_PROGRESS
        self.started_at = time.time()
        if assigned_to is not None:
            self.assigned_to = assigned_to

    def complete(self, resolution: str) -> None:
        """in-progress -> completed."""
        if self.status != WorkStatus.IN_PROGRESS:
            raise self._rejected(WorkStatus.COMPLETED)
        self.status = WorkStatus.COMPLETED
        self.completed_at = time.time()
        self.resolution = resolution

    def escalate(self, reason: str) -> None:
        """Any non-terminal status -> escalated."""
        if self.status.is_terminal:
            raise self._rejected(WorkStatus.ESCALATED)
        self.status = WorkStatus.ESCALATED
        self.completed_at = time.time()
        self.resolution = f"Escalated: {reason}"

    def _rejected(self, target: WorkStatus) -> InvalidWorkTransition:
        return InvalidWorkTransition(
            f"Cannot move work {self.id} from {self.status.value} to {target.value}",
            work_id=self.id,
            current_status=self.status.value,
            attempted=target.value,
        )

    # -- queries --------------------------------------------------------------

    @property
    def is_pending(self) -> bool:
        return self.status == WorkStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        """True once the item is completed or escalated."""
        return self.status.is_terminal

    def snapshot(self) -> DiscoveredWork:
        """Return a detached copy suitable for handing to observers."""
        return dataclasses.replace(
            self,
            resource_sids=list(self.resource_sids),
            tags=list(self.tags),
        )
