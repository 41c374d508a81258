"""Work discovery and queueing.

Listens to diagnosis producers for validation failures, classifies each
diagnosis into a :class:`~remedy_loop.domain.entities.DiscoveredWork` item,
and keeps those items in an in-memory queue with a forward-only lifecycle.

Classes
-------
DiagnosisSource
    Protocol for anything that can deliver ``ValidationFailed`` events.
DiagnosisAnalyzer
    Protocol for a fallback analyzer used when an event has no diagnosis.
QueueStats
    Frozen snapshot of queue counts.
WorkDiscovery
    The queue component itself.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from remedy_loop.domain.entities import DiscoveredWork
from remedy_loop.domain.enums import (
    AutomationTier,
    RootCauseCategory,
    WorkSource,
    WorkStatus,
)
from remedy_loop.domain.events import (
    DomainEvent,
    ValidationFailed,
    WorkCompleted,
    WorkDiscovered,
    WorkEscalated,
    WorkStarted,
)
from remedy_loop.domain.exceptions import WorkNotFoundError
from remedy_loop.domain.values import Diagnosis, RootCause, ValidationResult
from remedy_loop.infrastructure.config import WorkDiscoveryConfig
from remedy_loop.infrastructure.event_bus import EventBus, Handler
from remedy_loop.services.classification import create_work_from_diagnosis

logger = logging.getLogger(__name__)

#: Confidence given to a diagnosis synthesised from a bare validation result.
MINIMAL_DIAGNOSIS_CONFIDENCE = 0.3

_AUTO_HANDLED_TIERS = (AutomationTier.AUTOMATED_CONFIG, AutomationTier.AUTOMATED_CODE)


# ===================================================================== #
#  Collaborator protocols                                                #
# ===================================================================== #

@runtime_checkable
class DiagnosisSource(Protocol):
    """Anything that publishes ``ValidationFailed`` events.

    An :class:`~remedy_loop.infrastructure.event_bus.EventBus` satisfies it.
    """

    def subscribe(self, event_type: Any, handler: Handler) -> None: ...

    def unsubscribe(self, event_type: Any, handler: Handler) -> bool: ...


@runtime_checkable
class DiagnosisAnalyzer(Protocol):
    """Produces a diagnosis from a raw validation payload."""

    def analyze(self, result: Mapping[str, Any]) -> Diagnosis: ...


# ===================================================================== #
#  Queue statistics                                                      #
# ===================================================================== #

@dataclass(frozen=True)
class QueueStats:
    """Counts over the queue contents at the moment of the call.

    Attributes
    ----------
    queue_size:
        Number of items held, terminal ones included.
    by_status:
        Status value -> count.  Every status is present, zero when unused.
    by_priority:
        Priority value -> count.
    by_tier:
        Tier number -> count.
    """

    queue_size: int = 0
    by_status: Mapping[str, int] = field(default_factory=dict)
    by_priority: Mapping[str, int] = field(default_factory=dict)
    by_tier: Mapping[int, int] = field(default_factory=dict)

    @property
    def pending_count(self) -> int:
        return self.by_status.get(WorkStatus.PENDING.value, 0)

    @property
    def in_progress_count(self) -> int:
        return self.by_status.get(WorkStatus.IN_PROGRESS.value, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_size": self.queue_size,
            "by_status": dict(self.by_status),
            "by_priority": dict(self.by_priority),
            "by_tier": dict(self.by_tier),
        }


# ===================================================================== #
#  Work Discovery                                                        #
# ===================================================================== #

class WorkDiscovery:
    """Classifies validation failures into prioritised, trackable work.

    Parameters
    ----------
    config:
        Queue configuration.  Defaults to :class:`WorkDiscoveryConfig()`.
    event_bus:
        Bus that receives ``work-*`` events.  A private bus is created when
        omitted.

    Usage::

        discovery = WorkDiscovery()
        discovery.register_validator(validator_bus)
        discovery.event_bus.subscribe(WorkDiscovered, on_work)

        work = discovery.get_next_work()
        if work is not None:
            discovery.start_work(work)
    """

    def __init__(
        self,
        config: WorkDiscoveryConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or WorkDiscoveryConfig()
        self._config.validate()
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._queue: list[DiscoveredWork] = []
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._sources: list[DiagnosisSource] = []
        self._analyzer: DiagnosisAnalyzer | None = None

    # -- properties -----------------------------------------------------------

    @property
    def config(self) -> WorkDiscoveryConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def source_count(self) -> int:
        """Number of diagnosis sources currently registered."""
        return len(self._sources)

    # -- source registration --------------------------------------------------

    def register_validator(self, source: DiagnosisSource) -> None:
        """Subscribe to *source*'s validation failures.

        Registering the same source twice has no further effect.
        """
        if any(s is source for s in self._sources):
            logger.debug("Source %r already registered", source)
            return
        source.subscribe(ValidationFailed, self._on_validation_failure)
        self._sources.append(source)
        logger.debug("Registered diagnosis source %r", source)

    def unregister_validator(self, source: DiagnosisSource) -> None:
        """Unsubscribe from *source*.  Unknown sources are ignored."""
        for i, registered in enumerate(self._sources):
            if registered is source:
                source.unsubscribe(ValidationFailed, self._on_validation_failure)
                del self._sources[i]
                logger.debug("Unregistered diagnosis source %r", source)
                return

    def set_analyzer(self, analyzer: DiagnosisAnalyzer | None) -> None:
        """Install the analyzer used for events that carry no diagnosis."""
        self._analyzer = analyzer

    # -- incoming failures ----------------------------------------------------

    def _on_validation_failure(self, event: DomainEvent) -> None:
        if not isinstance(event, ValidationFailed):
            return
        if not self._config.accepts(WorkSource.VALIDATION_FAILURE):
            logger.debug("Validation failure ignored: source disabled")
            return

        diagnosis = event.diagnosis
        if diagnosis is None:
            diagnosis = self._diagnose(event.result)
        self.handle_diagnosis(diagnosis)

    def handle_diagnosis(
        self,
        diagnosis: Diagnosis,
        source: WorkSource = WorkSource.VALIDATION_FAILURE,
    ) -> DiscoveredWork | None:
        """Classify *diagnosis* and enqueue the resulting work.

        Returns the enqueued item, or ``None`` when configuration filters
        it out (source disabled or priority below ``min_priority``) or the
        queue is full of in-progress work.
        """
        if not self._config.accepts(source):
            logger.debug("Diagnosis from %s ignored: source disabled", source.value)
            return None

        work = create_work_from_diagnosis(diagnosis, source=source)
        if work.priority.rank > self._config.min_priority_level.rank:
            logger.debug(
                "Dropping %s: priority %s below minimum %s",
                work.id,
                work.priority.value,
                self._config.min_priority,
            )
            return None
        return work if self._enqueue(work) else None

    def _diagnose(self, result: Mapping[str, Any]) -> Diagnosis:
        if self._analyzer is not None:
            try:
                return self._analyzer.analyze(result)
            except Exception:
                logger.exception("Diagnosis analyzer failed; using minimal diagnosis")
        return self._create_minimal_diagnosis(result)

    @staticmethod
    def _create_minimal_diagnosis(result: Mapping[str, Any]) -> Diagnosis:
        """Build a low-confidence ``unknown`` diagnosis from a raw result."""
        result = result if isinstance(result, Mapping) else {}
        errors = tuple(str(e) for e in result.get("errors") or ())
        description = errors[0] if errors else "Validation failed without diagnosis"
        validation = ValidationResult(
            success=False,
            resource_sid=str(result.get("resourceSid") or result.get("resource_sid") or ""),
            resource_type=str(result.get("resourceType") or result.get("resource_type") or ""),
            primary_status=str(result.get("primaryStatus") or "unknown"),
            errors=errors,
        )
        return Diagnosis(
            pattern_id="minimal",
            summary=description,
            root_cause=RootCause(
                category=RootCauseCategory.UNKNOWN,
                description=description,
                confidence=MINIMAL_DIAGNOSIS_CONFIDENCE,
            ),
            validation_result=validation,
        )

    # -- queue mutation -------------------------------------------------------

    def add_work(self, work: DiscoveredWork) -> bool:
        """Enqueue an externally built work item.

        Returns ``False`` when the queue is full of in-progress work and the
        item was rejected.
        """
        return self._enqueue(work)

    def _enqueue(self, work: DiscoveredWork) -> bool:
        if len(self._queue) >= self._config.max_queue_size and not self._evict():
            logger.warning(
                "Queue full (%d) with work in progress; rejected %s (%s)",
                self._config.max_queue_size,
                work.id,
                work.priority.value,
            )
            return False
        self._queue.append(work)
        self._sequence[work.id] = next(self._counter)
        logger.info(
            "Work discovered: %s (priority=%s, tier=%d)",
            work.id,
            work.priority.value,
            work.tier,
        )
        self._event_bus.publish(WorkDiscovered(work=work.snapshot(), source_id=work.id))

        if self._config.auto_handle_low_tier and work.tier in _AUTO_HANDLED_TIERS:
            self.start_work(work, assigned_to="auto")
        return True

    def _evict(self) -> bool:
        """Drop one item: oldest terminal first, else lowest-priority newest pending.

        In-progress work is never evicted; ``False`` when nothing could go.
        """
        terminal = [w for w in self._queue if w.is_terminal]
        pending = [w for w in self._queue if w.is_pending]
        if terminal:
            victim = min(terminal, key=lambda w: (w.completed_at or 0.0, self._sequence[w.id]))
        elif pending:
            victim = max(pending, key=lambda w: (w.priority.rank, self._sequence[w.id]))
        else:
            return False
        self._queue.remove(victim)
        self._sequence.pop(victim.id, None)
        logger.warning(
            "Queue full (%d); evicted %s (%s, %s)",
            self._config.max_queue_size,
            victim.id,
            victim.status.value,
            victim.priority.value,
        )
        return True

    def _resolve(self, work: DiscoveredWork | str) -> DiscoveredWork:
        work_id = work if isinstance(work, str) else work.id
        for item in self._queue:
            if item.id == work_id:
                return item
        raise WorkNotFoundError(work_id)

    # -- lifecycle actions ----------------------------------------------------

    def get_next_work(self) -> DiscoveredWork | None:
        """Highest-priority pending item, earliest discovered first.

        The item stays in the queue; call :meth:`start_work` to claim it.
        """
        pending = [w for w in self._queue if w.is_pending]
        if not pending:
            return None
        return min(
            pending,
            key=lambda w: (w.priority.rank, w.discovered_at, self._sequence[w.id]),
        )

    def start_work(
        self,
        work: DiscoveredWork | str,
        assigned_to: str | None = None,
    ) -> DiscoveredWork:
        """pending -> in-progress.  Raises ``InvalidWorkTransition`` otherwise."""
        item = self._resolve(work)
        item.start(assigned_to)
        logger.info("Work started: %s", item.id)
        self._event_bus.publish(WorkStarted(work=item.snapshot(), source_id=item.id))
        return item

    def complete_work(self, work: DiscoveredWork | str, resolution: str) -> DiscoveredWork:
        """in-progress -> completed."""
        item = self._resolve(work)
        item.complete(resolution)
        logger.info("Work completed: %s", item.id)
        self._event_bus.publish(WorkCompleted(work=item.snapshot(), source_id=item.id))
        return item

    def escalate_work(self, work: DiscoveredWork | str, reason: str) -> DiscoveredWork:
        """pending or in-progress -> escalated."""
        item = self._resolve(work)
        item.escalate(reason)
        logger.info("Work escalated: %s (%s)", item.id, reason)
        self._event_bus.publish(
            WorkEscalated(work=item.snapshot(), reason=reason, source_id=item.id)
        )
        return item

    # -- queries --------------------------------------------------------------

    def get_queue(self) -> list[DiscoveredWork]:
        """Return a list copy of every queued item, in enqueue order."""
        return list(self._queue)

    def get_pending_by_tier(self, tier: AutomationTier | int) -> list[DiscoveredWork]:
        return [w for w in self._queue if w.is_pending and w.tier == tier]

    def get_stats(self) -> QueueStats:
        """Recount the queue contents."""
        by_status = {s.value: 0 for s in WorkStatus}
        by_status.update(Counter(w.status.value for w in self._queue))
        return QueueStats(
            queue_size=len(self._queue),
            by_status=by_status,
            by_priority=dict(Counter(w.priority.value for w in self._queue)),
            by_tier=dict(Counter(int(w.tier) for w in self._queue)),
        )

    def __len__(self) -> int:
        return len(self._queue)

    # -- shutdown -------------------------------------------------------------

    def stop(self) -> None:
        """Unsubscribe from every source and drop all observers.  Idempotent."""
        for source in self._sources:
            source.unsubscribe(ValidationFailed, self._on_validation_failure)
        if self._sources:
            logger.debug("Stopped; released %d source(s)", len(self._sources))
        self._sources.clear()
        self._event_bus.clear()
