"""Scripted collaborators for tests and examples.

Provides a fix executor and a replay fixture whose behaviour is fixed in
advance, so replay comparisons can be exercised without any real
remediation machinery.

Usage::

    executor = ScriptedExecutor()
    scenario, fixture = scripted_scenario(
        "webhook-timeout", executor, succeed_on_without=3, succeed_on_with=1,
    )
    verifier.set_executor(executor)
    verifier.register_scenario(scenario)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from remedy_loop.domain.enums import FixActionType, RootCauseCategory
from remedy_loop.domain.values import Diagnosis, RootCause, SuggestedFix, ValidationResult
from remedy_loop.verification.replay import ReplayScenario


def make_diagnosis(
    category: RootCauseCategory | str = RootCauseCategory.CONFIGURATION,
    confidence: float = 0.9,
    *,
    automated: bool = True,
    fix_confidence: float = 0.9,
    with_fix: bool = True,
    pattern_id: str = "pattern-1",
    resource_sid: str = "CA0000000000000000000000000000000",
    is_known_pattern: bool = False,
) -> Diagnosis:
    """Build a diagnosis with at most one suggested fix."""
    fixes: tuple[SuggestedFix, ...] = ()
    if with_fix:
        fixes = (
            SuggestedFix(
                description="Apply suggested remediation",
                action_type=FixActionType.CONFIG,
                confidence=fix_confidence,
                automated=automated,
            ),
        )
    category_value = getattr(category, "value", category)
    return Diagnosis(
        pattern_id=pattern_id,
        summary=f"{category_value} failure",
        root_cause=RootCause(
            category=category,
            description=f"Scripted {category_value} root cause",
            confidence=confidence,
        ),
        suggested_fixes=fixes,
        is_known_pattern=is_known_pattern,
        previous_occurrences=2 if is_known_pattern else 0,
        validation_result=ValidationResult(
            success=False, resource_sid=resource_sid, resource_type="call"
        ),
    )


class ScriptedExecutor:
    """Fix executor that records every call and returns fixed actions.

    Parameters
    ----------
    actions:
        Returned from every successful call.
    delay_s:
        Sleep before returning; use it to trigger attempt timeouts.
    error:
        If set, raised from every call after recording it.
    """

    def __init__(
        self,
        actions: Sequence[str] = ("applied suggested fix",),
        delay_s: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.actions = list(actions)
        self.delay_s = delay_s
        self.error = error
        self.calls: list[tuple[Diagnosis, list[str] | None]] = []

    async def attempt_fix(
        self, diagnosis: Diagnosis, learnings: list[str] | None = None
    ) -> list[str]:
        self.calls.append((diagnosis, None if learnings is None else list(learnings)))
        if self.delay_s > 0:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return list(self.actions)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_learnings(self) -> list[str] | None:
        """Learnings passed on the most recent call (``None`` for baseline)."""
        return self.calls[-1][1] if self.calls else None


class ScriptedFixture:
    """Mutable failure fixture driven by a :class:`ScriptedExecutor`.

    The success check passes on the *n*-th check of a run, where *n* is
    ``succeed_on_with`` when the executor last received learnings and
    ``succeed_on_without`` otherwise.  ``None`` means never.  The check
    counter is reset by :meth:`setup_failure`.
    """

    def __init__(
        self,
        executor: ScriptedExecutor,
        succeed_on_without: int | None,
        succeed_on_with: int | None,
    ) -> None:
        self.executor = executor
        self.succeed_on_without = succeed_on_without
        self.succeed_on_with = succeed_on_with
        self.checks = 0
        self.resets = 0
        self.cleanups = 0

    async def setup_failure(self) -> None:
        self.checks = 0
        self.resets += 1

    async def cleanup(self) -> None:
        self.cleanups += 1

    async def validate_success(self) -> bool:
        self.checks += 1
        if self.executor.last_learnings is not None:
            target = self.succeed_on_with
        else:
            target = self.succeed_on_without
        return target is not None and self.checks >= target


def scripted_scenario(
    scenario_id: str,
    executor: ScriptedExecutor,
    *,
    succeed_on_without: int | None,
    succeed_on_with: int | None,
    learnings: Sequence[str] = ("Check the webhook URL before redeploying",),
    diagnosis: Diagnosis | None = None,
    name: str | None = None,
) -> tuple[ReplayScenario, ScriptedFixture]:
    """Build a scenario wired to a fresh :class:`ScriptedFixture`."""
    fixture = ScriptedFixture(executor, succeed_on_without, succeed_on_with)
    scenario = ReplayScenario(
        id=scenario_id,
        name=name or scenario_id,
        description=f"Scripted scenario {scenario_id}",
        diagnosis=diagnosis or make_diagnosis(pattern_id=scenario_id),
        captured_learnings=tuple(learnings),
        resolution="scripted",
        validate_success=fixture.validate_success,
        setup_failure=fixture.setup_failure,
        cleanup=fixture.cleanup,
    )
    return scenario, fixture
