"""Replay verification of captured learnings.

A :class:`ReplayScenario` is a reusable fixture for a past failure: the
diagnosis, the learnings captured while fixing it, a success predicate and
optional reset/cleanup hooks.  The :class:`ReplayVerifier` runs a scenario
against the installed fix executor twice, once without learnings
(*baseline*) and once with them (*enhanced*), and reports whether the
learnings made a measurable difference.

Classes
-------
FixExecutor
    Protocol for the pluggable fix strategy.
ReplayScenario
    The fixture.
ReplayAttempt, ReplayResult
    Outcome of one attempt and of one replay run.
Improvement, ReplayComparison
    Baseline versus enhanced deltas for one scenario.
VerificationSummary
    Bucket counts and averages over many comparisons.
ReplayVerifier
    Runs replays, comparisons and full verification passes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np

from remedy_loop.domain.enums import ScenarioOutcome
from remedy_loop.domain.events import (
    ComparisonCompleted,
    ReplayAttemptRecorded,
    ReplayCompleted,
    ReplayStarted,
    VerificationCompleted,
)
from remedy_loop.domain.exceptions import ExecutorNotSetError, ScenarioNotFoundError
from remedy_loop.domain.values import Diagnosis
from remedy_loop.infrastructure.config import ReplayVerifierConfig
from remedy_loop.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)

#: A zero-argument hook; may be a plain function or a coroutine function.
Hook = Callable[[], Awaitable[Any] | Any]
#: The success predicate; may return a bool or an awaitable of one.
Predicate = Callable[[], Awaitable[bool] | bool]
#: A bare fix function with the same signature as ``FixExecutor.attempt_fix``.
FixFunction = Callable[..., Awaitable[Iterable[str]] | Iterable[str] | None]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Await a coroutine function; run anything else on a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    return await _resolve(await asyncio.to_thread(fn, *args))


# ===================================================================== #
#  Executor protocol                                                     #
# ===================================================================== #

@runtime_checkable
class FixExecutor(Protocol):
    """Pluggable fix strategy.

    ``attempt_fix`` receives the scenario diagnosis and, for enhanced runs,
    the captured learnings.  It returns the human-readable actions taken.
    It may be synchronous or a coroutine function.  A synchronous one runs on
    a worker thread so the timeout still applies; a timed-out thread cannot
    be cancelled and finishes in the background.  It is not assumed to be
    idempotent.
    """

    def attempt_fix(
        self, diagnosis: Diagnosis, learnings: list[str] | None = None
    ) -> Awaitable[Iterable[str]] | Iterable[str]: ...


# ===================================================================== #
#  Scenario and results                                                  #
# ===================================================================== #

@dataclass(frozen=True)
class ReplayScenario:
    """A named failure fixture.

    Attributes
    ----------
    id / name / description:
        Identity and labels.
    diagnosis:
        Passed to the executor on every attempt.
    captured_learnings:
        Ordered learnings handed to the executor on enhanced runs.
    resolution:
        What fixed the original failure.
    validate_success:
        Predicate consulted after every completed executor call.
    setup_failure:
        Resets the fixture to its failing state; runs once before the first
        attempt of every replay.
    cleanup:
        Runs after the last attempt of every replay, even when attempts
        fail.
    """

    id: str
    name: str
    diagnosis: Diagnosis
    validate_success: Predicate
    description: str = ""
    captured_learnings: tuple[str, ...] = ()
    resolution: str = ""
    setup_failure: Hook | None = None
    cleanup: Hook | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.captured_learnings, tuple):
            object.__setattr__(self, "captured_learnings", tuple(self.captured_learnings))


@dataclass(frozen=True)
class ReplayAttempt:
    """One executor call plus its success check."""

    attempt: int
    duration_ms: float
    success: bool
    error: str | None = None
    actions: tuple[str, ...] = ()
    timed_out: bool = False


@dataclass(frozen=True)
class ReplayResult:
    """Outcome of one replay run."""

    scenario_id: str
    with_learnings: bool
    success: bool
    attempts: tuple[ReplayAttempt, ...]
    total_attempts: int
    total_duration_ms: float
    started_at: float
    completed_at: float


@dataclass(frozen=True)
class Improvement:
    """Baseline minus enhanced.  Positive values favour learnings.

    The percentages are ``None`` when the baseline value is zero.
    """

    time_saved_ms: float
    time_improvement_percent: float | None
    attempts_saved: int
    attempts_improvement_percent: float | None
    learnings_helped: bool
    learnings_enabled_success: bool


@dataclass(frozen=True)
class ReplayComparison:
    scenario_id: str
    scenario_name: str
    baseline: ReplayResult
    enhanced: ReplayResult
    improvement: Improvement
    outcome: ScenarioOutcome
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class VerificationSummary:
    """Aggregate over a verification pass.

    Every comparison falls into exactly one of the four ``scenarios_*``
    buckets, so the bucket counts sum to ``total_scenarios``.
    """

    total_scenarios: int = 0
    scenarios_improved: int = 0
    scenarios_enabled_success: int = 0
    scenarios_no_difference: int = 0
    scenarios_hurt: int = 0
    avg_time_improvement_percent: float = 0.0
    avg_attempts_improvement_percent: float = 0.0
    success_rate_with_learnings: float = 0.0
    success_rate_without_learnings: float = 0.0
    comparisons: tuple[ReplayComparison, ...] = ()

    @property
    def outcomes(self) -> dict[str, ScenarioOutcome]:
        """Scenario id -> bucket."""
        return {c.scenario_id: c.outcome for c in self.comparisons}


# ===================================================================== #
#  Comparison rules                                                      #
# ===================================================================== #

def _gains(
    baseline: ReplayResult, enhanced: ReplayResult, time_tolerance_ms: float
) -> tuple[bool, bool]:
    """Whether *enhanced* was cheaper, and whether it was costlier, on any axis.

    Time counts only when the difference exceeds the tolerance.
    """
    attempts_saved = baseline.total_attempts - enhanced.total_attempts
    time_saved = baseline.total_duration_ms - enhanced.total_duration_ms
    better = attempts_saved > 0 or time_saved > time_tolerance_ms
    worse = attempts_saved < 0 or time_saved < -time_tolerance_ms
    return better, worse


def _helped(baseline: ReplayResult, enhanced: ReplayResult, time_tolerance_ms: float) -> bool:
    if not (baseline.success and enhanced.success):
        return False
    return _gains(baseline, enhanced, time_tolerance_ms)[0]


def classify_outcome(
    baseline: ReplayResult,
    enhanced: ReplayResult,
    time_tolerance_ms: float = 0.0,
) -> ScenarioOutcome:
    """Bucket one baseline/enhanced pair.

    * enabled_success: baseline failed, enhanced succeeded
    * improved: both succeeded and enhanced saved attempts or time
    * hurt: baseline succeeded and enhanced failed, or both succeeded and
      enhanced was costlier on some axis while cheaper on none
    * no_difference: everything else (ties, and both failing)
    """
    if enhanced.success and not baseline.success:
        return ScenarioOutcome.ENABLED_SUCCESS
    if baseline.success and not enhanced.success:
        return ScenarioOutcome.HURT
    if not baseline.success:
        return ScenarioOutcome.NO_DIFFERENCE

    better, worse = _gains(baseline, enhanced, time_tolerance_ms)
    if better:
        return ScenarioOutcome.IMPROVED
    if worse:
        return ScenarioOutcome.HURT
    return ScenarioOutcome.NO_DIFFERENCE


def compute_improvement(
    baseline: ReplayResult,
    enhanced: ReplayResult,
    time_tolerance_ms: float = 0.0,
) -> Improvement:
    time_saved = baseline.total_duration_ms - enhanced.total_duration_ms
    attempts_saved = baseline.total_attempts - enhanced.total_attempts
    return Improvement(
        time_saved_ms=time_saved,
        time_improvement_percent=(
            time_saved / baseline.total_duration_ms * 100.0
            if baseline.total_duration_ms > 0
            else None
        ),
        attempts_saved=attempts_saved,
        attempts_improvement_percent=(
            attempts_saved / baseline.total_attempts * 100.0
            if baseline.total_attempts > 0
            else None
        ),
        learnings_helped=_helped(baseline, enhanced, time_tolerance_ms),
        learnings_enabled_success=not baseline.success and enhanced.success,
    )


def _mean_defined(values: Iterable[float | None]) -> float:
    defined = np.asarray([v for v in values if v is not None], dtype=np.float64)
    if defined.size == 0:
        return 0.0
    return float(np.mean(defined))


# ===================================================================== #
#  Verifier                                                              #
# ===================================================================== #

class ReplayVerifier:
    """Runs controlled baseline/enhanced replays against a fix executor.

    Parameters
    ----------
    config:
        Attempt budget and timing.  Defaults to :class:`ReplayVerifierConfig()`.
    event_bus:
        Bus receiving ``replay-*``, ``comparison-completed`` and
        ``verification-completed`` events.  A private bus is created when
        omitted.

    Usage::

        verifier = ReplayVerifier(ReplayVerifierConfig(attempt_delay_ms=0))
        verifier.set_executor(my_executor)
        verifier.register_scenario(scenario)
        comparison = await verifier.compare(scenario.id)
        summary = await verifier.verify_all()

    Attempts inside one replay are strictly sequential.  There is no way to
    cancel a running replay other than the per-attempt timeout.
    """

    def __init__(
        self,
        config: ReplayVerifierConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or ReplayVerifierConfig()
        self._config.validate()
        self._event_bus = event_bus if event_bus is not None else EventBus()
        self._scenarios: dict[str, ReplayScenario] = {}
        self._executor: FixExecutor | FixFunction | None = None

    @property
    def config(self) -> ReplayVerifierConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    # -- setup ----------------------------------------------------------------

    def set_executor(self, executor: FixExecutor | FixFunction) -> None:
        """Install the fix strategy for subsequent replays.

        *executor* is either an object with ``attempt_fix`` or a bare
        callable with the same signature.
        """
        self._executor = executor

    @property
    def has_executor(self) -> bool:
        return self._executor is not None

    def register_scenario(self, scenario: ReplayScenario) -> None:
        """Add *scenario*, replacing any scenario with the same id."""
        if scenario.id in self._scenarios:
            logger.debug("Replacing scenario %s", scenario.id)
        self._scenarios[scenario.id] = scenario

    def unregister_scenario(self, scenario_id: str) -> bool:
        """Remove a scenario.  Returns ``True`` if it was registered."""
        return self._scenarios.pop(scenario_id, None) is not None

    def get_scenarios(self) -> list[ReplayScenario]:
        return list(self._scenarios.values())

    def get_scenario(self, scenario_id: str) -> ReplayScenario:
        try:
            return self._scenarios[scenario_id]
        except KeyError:
            raise ScenarioNotFoundError(scenario_id) from None

    def _require_executor(self) -> Callable[..., Any]:
        if self._executor is None:
            raise ExecutorNotSetError()
        return getattr(self._executor, "attempt_fix", self._executor)

    # -- replay ---------------------------------------------------------------

    async def replay(self, scenario_id: str, with_learnings: bool) -> ReplayResult:
        """Run *scenario_id* until it succeeds or the attempt budget runs out.

        Raises
        ------
        ScenarioNotFoundError
            If the id is not registered.
        ExecutorNotSetError
            If :meth:`set_executor` was never called.
        """
        scenario = self.get_scenario(scenario_id)
        attempt_fix = self._require_executor()
        learnings = list(scenario.captured_learnings) if with_learnings else None

        started_at = time.time()
        start = time.monotonic()
        attempts: list[ReplayAttempt] = []
        success = False

        self._event_bus.publish(
            ReplayStarted(
                scenario_id=scenario_id,
                with_learnings=with_learnings,
                source_id=scenario_id,
            )
        )
        if scenario.setup_failure is not None:
            await _resolve(scenario.setup_failure())

        try:
            for number in range(1, self._config.max_attempts + 1):
                attempt = await self._run_attempt(
                    number, scenario, attempt_fix, scenario.diagnosis, learnings
                )
                attempts.append(attempt)
                success = attempt.success
                logger.debug(
                    "Replay %s (learnings=%s) attempt %d/%d: %s",
                    scenario_id,
                    with_learnings,
                    number,
                    self._config.max_attempts,
                    "success" if success else attempt.error or "failed",
                )
                self._event_bus.publish(
                    ReplayAttemptRecorded(
                        scenario_id=scenario_id, attempt=attempt, source_id=scenario_id
                    )
                )
                if success:
                    break
                if number < self._config.max_attempts and self._config.attempt_delay_ms > 0:
                    await asyncio.sleep(self._config.attempt_delay_ms / 1000.0)
        finally:
            if scenario.cleanup is not None:
                await _resolve(scenario.cleanup())

        result = ReplayResult(
            scenario_id=scenario_id,
            with_learnings=with_learnings,
            success=success,
            attempts=tuple(attempts),
            total_attempts=len(attempts),
            total_duration_ms=(time.monotonic() - start) * 1000.0,
            started_at=started_at,
            completed_at=time.time(),
        )
        self._event_bus.publish(ReplayCompleted(result=result, source_id=scenario_id))
        return result

    async def _run_attempt(
        self,
        number: int,
        scenario: ReplayScenario,
        attempt_fix: Callable[..., Any],
        diagnosis: Diagnosis,
        learnings: list[str] | None,
    ) -> ReplayAttempt:
        timeout_ms = self._config.attempt_timeout_ms
        start = time.monotonic()
        actions: tuple[str, ...] = ()
        try:
            taken = await asyncio.wait_for(
                _invoke(attempt_fix, diagnosis, learnings),
                timeout=timeout_ms / 1000.0,
            )
            actions = tuple(str(a) for a in taken or ())
            success = bool(await _resolve(scenario.validate_success()))
        except asyncio.TimeoutError:
            return ReplayAttempt(
                attempt=number,
                duration_ms=(time.monotonic() - start) * 1000.0,
                success=False,
                error=f"Attempt timed out after {timeout_ms:g}ms",
                timed_out=True,
            )
        except Exception as exc:
            return ReplayAttempt(
                attempt=number,
                duration_ms=(time.monotonic() - start) * 1000.0,
                success=False,
                error=str(exc) or type(exc).__name__,
                actions=actions,
            )
        return ReplayAttempt(
            attempt=number,
            duration_ms=(time.monotonic() - start) * 1000.0,
            success=success,
            actions=actions,
        )

    # -- comparison -----------------------------------------------------------

    async def compare(self, scenario_id: str) -> ReplayComparison:
        """Run a baseline replay, then an enhanced one, and compare them.

        The fixture is reset between the two runs because every replay
        calls ``setup_failure`` before its first attempt.
        """
        scenario = self.get_scenario(scenario_id)
        self._require_executor()

        baseline = await self.replay(scenario_id, with_learnings=False)
        enhanced = await self.replay(scenario_id, with_learnings=True)

        tolerance = self._config.time_tolerance_ms
        comparison = ReplayComparison(
            scenario_id=scenario_id,
            scenario_name=scenario.name,
            baseline=baseline,
            enhanced=enhanced,
            improvement=compute_improvement(baseline, enhanced, tolerance),
            outcome=classify_outcome(baseline, enhanced, tolerance),
        )
        logger.info(
            "Comparison %s: %s (attempts %d -> %d)",
            scenario_id,
            comparison.outcome.value,
            baseline.total_attempts,
            enhanced.total_attempts,
        )
        self._event_bus.publish(
            ComparisonCompleted(comparison=comparison, source_id=scenario_id)
        )
        return comparison

    async def verify_all(self) -> VerificationSummary:
        """Compare every registered scenario, in registration order."""
        self._require_executor()
        comparisons = [await self.compare(sid) for sid in list(self._scenarios)]
        summary = self.compute_summary(comparisons)
        logger.info(
            "Verification: %d scenario(s), improved=%d enabled=%d same=%d hurt=%d",
            summary.total_scenarios,
            summary.scenarios_improved,
            summary.scenarios_enabled_success,
            summary.scenarios_no_difference,
            summary.scenarios_hurt,
        )
        self._event_bus.publish(VerificationCompleted(summary=summary))
        return summary

    def compute_summary(
        self, comparisons: Sequence[ReplayComparison]
    ) -> VerificationSummary:
        """Summarise *comparisons*.  An empty sequence yields all zeros."""
        if not comparisons:
            return VerificationSummary()

        counts: Mapping[ScenarioOutcome, int] = {
            outcome: sum(1 for c in comparisons if c.outcome is outcome)
            for outcome in ScenarioOutcome
        }
        total = len(comparisons)
        return VerificationSummary(
            total_scenarios=total,
            scenarios_improved=counts[ScenarioOutcome.IMPROVED],
            scenarios_enabled_success=counts[ScenarioOutcome.ENABLED_SUCCESS],
            scenarios_no_difference=counts[ScenarioOutcome.NO_DIFFERENCE],
            scenarios_hurt=counts[ScenarioOutcome.HURT],
            avg_time_improvement_percent=_mean_defined(
                c.improvement.time_improvement_percent for c in comparisons
            ),
            avg_attempts_improvement_percent=_mean_defined(
                c.improvement.attempts_improvement_percent for c in comparisons
            ),
            success_rate_with_learnings=sum(c.enhanced.success for c in comparisons) / total,
            success_rate_without_learnings=sum(c.baseline.success for c in comparisons) / total,
            comparisons=tuple(comparisons),
        )
