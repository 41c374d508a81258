"""Domain events for the remedy loop.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  Events are
the only coupling between the three core components and their observers:
work discovery, process metrics, and replay verification each publish to
their own ``EventBus``; observers subscribe to the event classes below.

Each class carries an ``event_name`` with the external, kebab-case name of
the notification (``"work-discovered"``, ``"replay-attempt"``, ...).
:func:`event_type_for` resolves such a name back to its class.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from .entities import DiscoveredWork
from .values import Diagnosis

if TYPE_CHECKING:
    from remedy_loop.measurement.process_metrics import ProcessMetrics
    from remedy_loop.verification.replay import (
        ReplayAttempt,
        ReplayComparison,
        ReplayResult,
        VerificationSummary,
    )

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events.

    Subclasses should remain frozen (immutable) and set ``event_name``.
    """

    event_name: ClassVar[str] = "domain-event"

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Producer-side event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationFailed(DomainEvent):
    """A monitored operation failed verification.

    Published by diagnosis producers.  ``diagnosis`` may be ``None`` when the
    producer could not diagnose the failure; ``result`` then carries the raw
    validation payload.
    """

    event_name: ClassVar[str] = "validation-failure"

    diagnosis: Diagnosis | None = None
    failure_type: str = "validation"
    result: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Work queue events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkDiscovered(DomainEvent):
    """A diagnosis was classified and enqueued as pending work."""

    event_name: ClassVar[str] = "work-discovered"

    work: DiscoveredWork | None = None


@dataclass(frozen=True)
class WorkStarted(DomainEvent):
    """A work item moved from pending to in-progress."""

    event_name: ClassVar[str] = "work-started"

    work: DiscoveredWork | None = None


@dataclass(frozen=True)
class WorkCompleted(DomainEvent):
    """A work item was resolved."""

    event_name: ClassVar[str] = "work-completed"

    work: DiscoveredWork | None = None


@dataclass(frozen=True)
class WorkEscalated(DomainEvent):
    """A work item was handed to a human."""

    event_name: ClassVar[str] = "work-escalated"

    work: DiscoveredWork | None = None
    reason: str = ""


# ---------------------------------------------------------------------------
# Fix-cycle metrics events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CycleStarted(DomainEvent):
    """A fix cycle began for a work item."""

    event_name: ClassVar[str] = "cycle-started"

    work_id: str = ""
    diagnosis: Diagnosis | None = None


@dataclass(frozen=True)
class FixAttempted(DomainEvent):
    """A fix attempt was recorded against an open cycle."""

    event_name: ClassVar[str] = "fix-attempted"

    work_id: str = ""
    attempt: int = 0


@dataclass(frozen=True)
class LearningCaptured(DomainEvent):
    """A learning was captured during an open cycle."""

    event_name: ClassVar[str] = "learning-captured"

    work_id: str = ""
    is_novel: bool = False


@dataclass(frozen=True)
class CycleCompleted(DomainEvent):
    """A fix cycle was sealed."""

    event_name: ClassVar[str] = "cycle-completed"

    metrics: ProcessMetrics | None = None


# ---------------------------------------------------------------------------
# Replay verification events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReplayStarted(DomainEvent):
    """A scenario replay is about to run its first attempt."""

    event_name: ClassVar[str] = "replay-started"

    scenario_id: str = ""
    with_learnings: bool = False


@dataclass(frozen=True)
class ReplayAttemptRecorded(DomainEvent):
    """One replay attempt finished (success, failure, or timeout)."""

    event_name: ClassVar[str] = "replay-attempt"

    scenario_id: str = ""
    attempt: ReplayAttempt | None = None


@dataclass(frozen=True)
class ReplayCompleted(DomainEvent):
    """A scenario replay finished."""

    event_name: ClassVar[str] = "replay-completed"

    result: ReplayResult | None = None


@dataclass(frozen=True)
class ComparisonCompleted(DomainEvent):
    """Baseline and enhanced replays of one scenario were compared."""

    event_name: ClassVar[str] = "comparison-completed"

    comparison: ReplayComparison | None = None


@dataclass(frozen=True)
class VerificationCompleted(DomainEvent):
    """Every registered scenario was compared and summarised."""

    event_name: ClassVar[str] = "verification-completed"

    summary: VerificationSummary | None = None


# ---------------------------------------------------------------------------
# Name lookup
# ---------------------------------------------------------------------------

_EVENT_TYPES: dict[str, type[DomainEvent]] = {
    cls.event_name: cls
    for cls in (
        ValidationFailed,
        WorkDiscovered,
        WorkStarted,
        WorkCompleted,
        WorkEscalated,
        CycleStarted,
        FixAttempted,
        LearningCaptured,
        CycleCompleted,
        ReplayStarted,
        ReplayAttemptRecorded,
        ReplayCompleted,
        ComparisonCompleted,
        VerificationCompleted,
    )
}


def event_type_for(name: str) -> type[DomainEvent]:
    """Return the event class published under *name*.

    Raises ``KeyError`` for names no component publishes.
    """
    return _EVENT_TYPES[name]


def event_names() -> list[str]:
    """Return every published event name."""
    return list(_EVENT_TYPES)
