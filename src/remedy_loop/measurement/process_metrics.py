"""Process metrics for the diagnose -> fix -> learn cycle.

The :class:`ProcessMetricsCollector` keeps one open *cycle* per work item,
counts fix attempts and captured learnings while the cycle is open, and
seals it into an immutable :class:`ProcessMetrics` record on completion.
Aggregates are recomputed from the sealed records on every call.

Timing model
~~~~~~~~~~~~
All durations are in milliseconds and derived from the collector's clock::

    time_to_diagnosis   = cycle start       - diagnosis timestamp   (>= 0)
    time_to_fix         = last fix attempt  - cycle start
    time_to_validation  = cycle completion  - last fix attempt
    total_cycle_time    = cycle completion  - cycle start

A cycle with no recorded attempts counts its whole duration as
``time_to_fix`` and reports ``time_to_validation = 0``.

The collector is not wired to the work queue; the driving caller decides
when a cycle starts, when an attempt happens and how it ended.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np

from remedy_loop.domain.entities import DiscoveredWork
from remedy_loop.domain.events import (
    CycleCompleted,
    CycleStarted,
    FixAttempted,
    LearningCaptured,
)
from remedy_loop.domain.exceptions import CycleNotFoundError, RemedyLoopError
from remedy_loop.domain.values import Diagnosis, clamp_confidence
from remedy_loop.infrastructure.config import ProcessMetricsConfig
from remedy_loop.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-cycle records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimingMetrics:
    """Durations of one fix cycle, in milliseconds."""

    time_to_diagnosis_ms: float = 0.0
    time_to_fix_ms: float = 0.0
    time_to_validation_ms: float = 0.0
    total_cycle_time_ms: float = 0.0
    fix_attempts: int = 0


@dataclass(frozen=True)
class QualityMetrics:
    """Judgements about how good the diagnosis and the fix were.

    ``first_fix_worked`` is derived from the attempt count at seal time and
    does not depend on ``diagnosis_accurate``.
    """

    diagnosis_accurate: bool = False
    first_fix_worked: bool = False
    root_cause_matched: bool = False
    successful_diagnosis_confidence: float = 0.0


@dataclass(frozen=True)
class LearningMetrics:
    """Learning counters of one fix cycle."""

    learnings_captured: int = 0
    novel_patterns_discovered: int = 0
    known_patterns_matched: int = 0
    learnings_promoted: int = 0


@dataclass(frozen=True)
class CycleQuality:
    """Caller-supplied judgement passed to :meth:`complete_cycle`."""

    diagnosis_accurate: bool
    root_cause_matched: bool
    workflow_used: str
    learnings_promoted: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CycleQuality:
        """Build from snake_case or camelCase keys; flags may be strings."""
        return cls(
            diagnosis_accurate=_flag(_field(data, "diagnosis_accurate", "diagnosisAccurate")),
            root_cause_matched=_flag(_field(data, "root_cause_matched", "rootCauseMatched")),
            workflow_used=str(_field(data, "workflow_used", "workflowUsed", "")),
            learnings_promoted=int(_field(data, "learnings_promoted", "learningsPromoted", 0) or 0),
        )


def _field(data: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


@dataclass(frozen=True)
class ProcessMetrics:
    """Sealed metrics of one completed fix cycle.

    Attributes
    ----------
    id:
        ``metrics-{work_id}-{completion millis}``.
    work_id:
        The work item the cycle tracked.
    resource_sid / resource_type:
        Copied from the diagnosis' validation result.
    timing / quality / learning:
        The three metric groups.
    diagnosis:
        The diagnosis the cycle started from.
    resolution / workflow_used:
        Free text supplied at completion.
    started_at / completed_at:
        Unix timestamps from the collector's clock.
    """

    id: str
    work_id: str
    timing: TimingMetrics
    quality: QualityMetrics
    learning: LearningMetrics
    diagnosis: Diagnosis
    resolution: str = ""
    workflow_used: str = ""
    resource_sid: str = ""
    resource_type: str = ""
    started_at: float = 0.0
    completed_at: float = 0.0

    @property
    def category(self) -> str:
        """Root-cause category value of the diagnosis, ``"unknown"`` if absent."""
        return self.diagnosis.category.value

    @property
    def fix_attempts(self) -> int:
        return self.timing.fix_attempts

    @property
    def first_fix_worked(self) -> bool:
        return self.quality.first_fix_worked


@dataclass(frozen=True)
class CycleProgress:
    """Read-only view of an open cycle."""

    work_id: str
    started_at: float
    fix_attempts: int


@dataclass
class _OpenCycle:
    work_id: str
    diagnosis: Diagnosis
    started_at: float
    resource_sid: str = ""
    resource_type: str = ""
    fix_started_at: float | None = None
    last_attempt_at: float | None = None
    fix_attempts: int = 0
    learnings_captured: int = 0
    novel_patterns_discovered: int = 0
    known_patterns_matched: int = 0


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AverageTiming:
    time_to_diagnosis_ms: float = 0.0
    time_to_fix_ms: float = 0.0
    time_to_validation_ms: float = 0.0
    total_cycle_time_ms: float = 0.0
    avg_fix_attempts: float = 0.0


@dataclass(frozen=True)
class QualityRates:
    """Proportions in [0, 1]; all 0.0 when no cycles are sealed."""

    diagnosis_accuracy_rate: float = 0.0
    first_fix_success_rate: float = 0.0
    root_cause_match_rate: float = 0.0
    avg_successful_confidence: float = 0.0


@dataclass(frozen=True)
class LearningTotals:
    total_learnings_captured: int = 0
    total_novel_patterns: int = 0
    total_known_patterns_matched: int = 0
    total_learnings_promoted: int = 0


@dataclass(frozen=True)
class CategoryMetrics:
    count: int = 0
    avg_cycle_time_ms: float = 0.0
    first_fix_success_rate: float = 0.0
    avg_confidence: float = 0.0


@dataclass(frozen=True)
class AggregateMetrics:
    """Statistics over a set of sealed cycles.

    Every rate and average is ``0.0`` on empty input and ``time_range`` is
    ``None``; nothing here ever divides by zero.
    """

    total_cycles: int = 0
    average_timing: AverageTiming = field(default_factory=AverageTiming)
    quality_rates: QualityRates = field(default_factory=QualityRates)
    learning_totals: LearningTotals = field(default_factory=LearningTotals)
    by_category: Mapping[str, CategoryMetrics] = field(default_factory=dict)
    time_range: tuple[float, float] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cycles": self.total_cycles,
            "average_timing": asdict(self.average_timing),
            "quality_rates": asdict(self.quality_rates),
            "learning_totals": asdict(self.learning_totals),
            "by_category": {k: asdict(v) for k, v in self.by_category.items()},
            "time_range": list(self.time_range) if self.time_range else None,
        }

    def summary(self) -> str:
        """Return a human-readable table string.

        Example output::

            === Process Metrics (12 cycles) ===
            Metric                          Value
            ---------------------------------------
            avg_total_cycle_time_ms    183204.5000
            diagnosis_accuracy_rate         0.7500
            ...
        """
        rows: list[tuple[str, float]] = [
            ("avg_time_to_diagnosis_ms", self.average_timing.time_to_diagnosis_ms),
            ("avg_time_to_fix_ms", self.average_timing.time_to_fix_ms),
            ("avg_time_to_validation_ms", self.average_timing.time_to_validation_ms),
            ("avg_total_cycle_time_ms", self.average_timing.total_cycle_time_ms),
            ("avg_fix_attempts", self.average_timing.avg_fix_attempts),
            ("diagnosis_accuracy_rate", self.quality_rates.diagnosis_accuracy_rate),
            ("first_fix_success_rate", self.quality_rates.first_fix_success_rate),
            ("root_cause_match_rate", self.quality_rates.root_cause_match_rate),
            ("avg_successful_confidence", self.quality_rates.avg_successful_confidence),
            ("total_learnings_captured", self.learning_totals.total_learnings_captured),
            ("total_novel_patterns", self.learning_totals.total_novel_patterns),
            ("total_known_patterns_matched", self.learning_totals.total_known_patterns_matched),
            ("total_learnings_promoted", self.learning_totals.total_learnings_promoted),
        ]
        name_width = max(len("Metric"), *(len(name) for name, _ in rows))
        value_width = 12
        sep = "-" * (name_width + value_width + 2)

        lines = [
            f"=== Process Metrics ({self.total_cycles} cycles) ===",
            f"{'Metric':<{name_width}}  {'Value':>{value_width}}",
            sep,
        ]
        for name, value in rows:
            lines.append(f"{name:<{name_width}}  {float(value):>{value_width}.4f}")
        lines.append(sep)

        if self.by_category:
            lines.append("")
            lines.append("By category:")
            for category, cm in sorted(self.by_category.items()):
                lines.append(
                    f"  {category}: count={cm.count} "
                    f"avg_cycle_time_ms={cm.avg_cycle_time_ms:.1f} "
                    f"first_fix_success_rate={cm.first_fix_success_rate:.2f} "
                    f"avg_confidence={cm.avg_confidence:.2f}"
                )
        return "\n".join(lines)


def _mean(values: Iterable[float]) -> float:
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def _rate(flags: Iterable[bool]) -> float:
    return _mean(1.0 if f else 0.0 for f in flags)


def _ms(seconds: float) -> float:
    return max(0.0, seconds * 1000.0)


# ===================================================================== #
#  Collector                                                             #
# ===================================================================== #

class ProcessMetricsCollector:
    """Tracks fix cycles and aggregates their outcomes.

    Parameters
    ----------
    config:
        Collector configuration.  Defaults to :class:`ProcessMetricsConfig()`.
    event_bus:
        Bus receiving ``cycle-*`` events.  A private bus is created when
        omitted.
    clock:
        Zero-argument callable returning the current Unix time in seconds.

    Usage::

        collector = ProcessMetricsCollector()
        collector.start_cycle(work)
        collector.record_fix_attempt(work.id)
        metrics = collector.complete_cycle(
            work.id,
            "Rotated webhook URL",
            CycleQuality(True, True, "bug-fix"),
        )
        print(collector.compute_aggregates().summary())
    """

    def __init__(
        self,
        config: ProcessMetricsConfig | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or ProcessMetricsConfig()
        self._config.validate()
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._clock = clock
        self._open: dict[str, _OpenCycle] = {}
        self._completed: list[ProcessMetrics] = []

    @property
    def config(self) -> ProcessMetricsConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # -- cycle lifecycle ------------------------------------------------------

    def start_cycle(self, work: DiscoveredWork) -> None:
        """Open a cycle for *work*.

        Re-opening an id that already has an open cycle replaces it; the
        earlier counters are discarded.
        """
        diagnosis = work.diagnosis
        if diagnosis is None:
            raise RemedyLoopError(
                "Cannot start cycle without diagnosis", {"work_id": work.id}
            )
        if work.id in self._open:
            logger.warning("Cycle for %s re-opened; previous counters discarded", work.id)

        validation = getattr(diagnosis, "validation_result", None)
        self._open[work.id] = _OpenCycle(
            work_id=work.id,
            diagnosis=diagnosis,
            started_at=self._clock(),
            resource_sid=getattr(validation, "resource_sid", "") or "",
            resource_type=getattr(validation, "resource_type", "") or "",
            known_patterns_matched=1 if getattr(diagnosis, "is_known_pattern", False) else 0,
        )
        logger.debug("Cycle started for %s", work.id)
        self._event_bus.publish(
            CycleStarted(work_id=work.id, diagnosis=diagnosis, source_id=work.id)
        )

    def record_fix_attempt(self, work_id: str) -> int | None:
        """Count one fix attempt.  Returns the new count, or ``None`` when
        *work_id* has no open cycle (the call is ignored)."""
        cycle = self._open.get(work_id)
        if cycle is None:
            logger.warning("Fix attempt for %s ignored: no open cycle", work_id)
            return None

        now = self._clock()
        if cycle.fix_started_at is None:
            cycle.fix_started_at = now
        cycle.last_attempt_at = now
        cycle.fix_attempts += 1
        logger.debug("Fix attempt %d for %s", cycle.fix_attempts, work_id)
        self._event_bus.publish(
            FixAttempted(work_id=work_id, attempt=cycle.fix_attempts, source_id=work_id)
        )
        return cycle.fix_attempts

    def record_learning_capture(self, work_id: str, is_novel: bool) -> int | None:
        """Count one captured learning.  Returns the cycle's learning count,
        or ``None`` when *work_id* has no open cycle."""
        cycle = self._open.get(work_id)
        if cycle is None:
            logger.warning("Learning capture for %s ignored: no open cycle", work_id)
            return None

        cycle.learnings_captured += 1
        if is_novel:
            cycle.novel_patterns_discovered += 1
        self._event_bus.publish(
            LearningCaptured(work_id=work_id, is_novel=bool(is_novel), source_id=work_id)
        )
        return cycle.learnings_captured

    def complete_cycle(
        self,
        work_id: str,
        resolution: str,
        quality: CycleQuality | Mapping[str, Any],
    ) -> ProcessMetrics:
        """Seal the cycle for *work_id* and return its metrics.

        Raises
        ------
        CycleNotFoundError
            If no cycle is open for *work_id*.
        """
        cycle = self._open.pop(work_id, None)
        if cycle is None:
            raise CycleNotFoundError(work_id)
        if not isinstance(quality, CycleQuality):
            quality = CycleQuality.from_mapping(quality)

        completed_at = self._clock()
        fix_mark = cycle.last_attempt_at if cycle.last_attempt_at is not None else completed_at
        try:
            diagnosed_at = float(cycle.diagnosis.timestamp)
        except (TypeError, ValueError):
            diagnosed_at = cycle.started_at

        metrics = ProcessMetrics(
            id=f"metrics-{work_id}-{int(completed_at * 1000)}",
            work_id=work_id,
            timing=TimingMetrics(
                time_to_diagnosis_ms=_ms(cycle.started_at - diagnosed_at),
                time_to_fix_ms=_ms(fix_mark - cycle.started_at),
                time_to_validation_ms=_ms(completed_at - fix_mark),
                total_cycle_time_ms=_ms(completed_at - cycle.started_at),
                fix_attempts=cycle.fix_attempts,
            ),
            quality=QualityMetrics(
                diagnosis_accurate=bool(quality.diagnosis_accurate),
                first_fix_worked=cycle.fix_attempts == 1,
                root_cause_matched=bool(quality.root_cause_matched),
                successful_diagnosis_confidence=clamp_confidence(
                    getattr(cycle.diagnosis, "confidence", 0.0)
                ),
            ),
            learning=LearningMetrics(
                learnings_captured=cycle.learnings_captured,
                novel_patterns_discovered=cycle.novel_patterns_discovered,
                known_patterns_matched=cycle.known_patterns_matched,
                learnings_promoted=quality.learnings_promoted,
            ),
            diagnosis=cycle.diagnosis,
            resolution=resolution,
            workflow_used=quality.workflow_used,
            resource_sid=cycle.resource_sid,
            resource_type=cycle.resource_type,
            started_at=cycle.started_at,
            completed_at=completed_at,
        )

        self._completed.append(metrics)
        overflow = len(self._completed) - self._config.max_stored_cycles
        if overflow > 0:
            del self._completed[:overflow]

        logger.info(
            "Cycle completed for %s: %d attempt(s) in %.0fms",
            work_id,
            metrics.timing.fix_attempts,
            metrics.timing.total_cycle_time_ms,
        )
        self._event_bus.publish(CycleCompleted(metrics=metrics, source_id=work_id))
        return metrics

    def cancel_cycle(self, work_id: str) -> bool:
        """Discard an open cycle without sealing it.  Returns ``True`` if one
        was open."""
        return self._open.pop(work_id, None) is not None

    # -- queries --------------------------------------------------------------

    def get_completed_metrics(self) -> list[ProcessMetrics]:
        return list(self._completed)

    def get_metrics_in_range(self, start: float, end: float) -> list[ProcessMetrics]:
        """Sealed cycles whose completion time lies in ``[start, end]``."""
        return [m for m in self._completed if start <= m.completed_at <= end]

    def get_in_progress_cycles(self) -> list[CycleProgress]:
        return [
            CycleProgress(c.work_id, c.started_at, c.fix_attempts)
            for c in self._open.values()
        ]

    def compute_aggregates(
        self, metrics: Iterable[ProcessMetrics] | None = None
    ) -> AggregateMetrics:
        """Aggregate *metrics* (all sealed cycles by default)."""
        data = list(self._completed if metrics is None else metrics)
        if not data:
            return AggregateMetrics()

        grouped: dict[str, list[ProcessMetrics]] = {}
        for m in data:
            grouped.setdefault(m.category, []).append(m)
        by_category = {
            category: CategoryMetrics(
                count=len(items),
                avg_cycle_time_ms=_mean(m.timing.total_cycle_time_ms for m in items),
                first_fix_success_rate=_rate(m.quality.first_fix_worked for m in items),
                avg_confidence=_mean(
                    m.quality.successful_diagnosis_confidence for m in items
                ),
            )
            for category, items in grouped.items()
        }

        completed = [m.completed_at for m in data]
        return AggregateMetrics(
            total_cycles=len(data),
            average_timing=AverageTiming(
                time_to_diagnosis_ms=_mean(m.timing.time_to_diagnosis_ms for m in data),
                time_to_fix_ms=_mean(m.timing.time_to_fix_ms for m in data),
                time_to_validation_ms=_mean(m.timing.time_to_validation_ms for m in data),
                total_cycle_time_ms=_mean(m.timing.total_cycle_time_ms for m in data),
                avg_fix_attempts=_mean(m.timing.fix_attempts for m in data),
            ),
            quality_rates=QualityRates(
                diagnosis_accuracy_rate=_rate(m.quality.diagnosis_accurate for m in data),
                first_fix_success_rate=_rate(m.quality.first_fix_worked for m in data),
                root_cause_match_rate=_rate(m.quality.root_cause_matched for m in data),
                avg_successful_confidence=_mean(
                    m.quality.successful_diagnosis_confidence
                    for m in data
                    if m.quality.diagnosis_accurate
                ),
            ),
            learning_totals=LearningTotals(
                total_learnings_captured=sum(m.learning.learnings_captured for m in data),
                total_novel_patterns=sum(m.learning.novel_patterns_discovered for m in data),
                total_known_patterns_matched=sum(
                    m.learning.known_patterns_matched for m in data
                ),
                total_learnings_promoted=sum(m.learning.learnings_promoted for m in data),
            ),
            by_category=by_category,
            time_range=(min(completed), max(completed)),
        )

    def clear(self) -> None:
        """Drop every open and sealed cycle."""
        self._open.clear()
        self._completed.clear()
