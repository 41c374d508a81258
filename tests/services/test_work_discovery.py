"""Tests for the WorkDiscovery queue."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import pytest

from remedy_loop.domain.entities import DiscoveredWork
from remedy_loop.domain.enums import (
    AutomationTier,
    RootCauseCategory,
    WorkPriority,
    WorkSource,
    WorkStatus,
)
from remedy_loop.domain.events import (
    ValidationFailed,
    WorkCompleted,
    WorkDiscovered,
    WorkEscalated,
    WorkStarted,
)
from remedy_loop.domain.exceptions import InvalidWorkTransition, WorkNotFoundError
from remedy_loop.domain.values import Diagnosis
from remedy_loop.infrastructure.config import WorkDiscoveryConfig
from remedy_loop.infrastructure.event_bus import EventBus, EventStore
from remedy_loop.services.work_discovery import (
    MINIMAL_DIAGNOSIS_CONFIDENCE,
    DiagnosisAnalyzer,
    DiagnosisSource,
    WorkDiscovery,
)
from remedy_loop.testing import make_diagnosis


@pytest.fixture
def discovery(event_bus: EventBus) -> WorkDiscovery:
    return WorkDiscovery(event_bus=event_bus)


class _FixedAnalyzer:
    def __init__(self, diagnosis: Diagnosis) -> None:
        self.diagnosis = diagnosis
        self.seen: list[Mapping[str, Any]] = []

    def analyze(self, result: Mapping[str, Any]) -> Diagnosis:
        self.seen.append(result)
        return self.diagnosis


class _BrokenAnalyzer:
    def analyze(self, result: Mapping[str, Any]) -> Diagnosis:
        raise RuntimeError("analyzer offline")


# ===================================================================== #
#  Source registration                                                   #
# ===================================================================== #


class TestSourceRegistration:
    def test_event_bus_is_a_source(self) -> None:
        assert isinstance(EventBus(), DiagnosisSource)
        assert isinstance(_FixedAnalyzer(make_diagnosis()), DiagnosisAnalyzer)

    def test_validation_failure_becomes_work(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis
    ) -> None:
        validator = EventBus()
        discovery.register_validator(validator)

        validator.publish(ValidationFailed(diagnosis=config_diagnosis))

        queue = discovery.get_queue()
        assert len(queue) == 1
        assert queue[0].diagnosis is config_diagnosis
        assert queue[0].source is WorkSource.VALIDATION_FAILURE

    def test_register_twice_is_noop(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis
    ) -> None:
        validator = EventBus()
        discovery.register_validator(validator)
        discovery.register_validator(validator)
        assert discovery.source_count == 1

        validator.publish(ValidationFailed(diagnosis=config_diagnosis))
        assert len(discovery) == 1

    def test_unregister_stops_delivery(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis
    ) -> None:
        validator = EventBus()
        discovery.register_validator(validator)
        discovery.unregister_validator(validator)

        validator.publish(ValidationFailed(diagnosis=config_diagnosis))
        assert len(discovery) == 0
        assert validator.handler_count() == 0

    def test_unregister_unknown_source_is_noop(self, discovery: WorkDiscovery) -> None:
        discovery.unregister_validator(EventBus())
        assert discovery.source_count == 0

    def test_multiple_sources(self, discovery: WorkDiscovery, config_diagnosis: Diagnosis) -> None:
        a, b = EventBus(), EventBus()
        discovery.register_validator(a)
        discovery.register_validator(b)

        a.publish(ValidationFailed(diagnosis=config_diagnosis))
        b.publish(ValidationFailed(diagnosis=config_diagnosis))
        assert len(discovery) == 2


# ===================================================================== #
#  Diagnosis fallback                                                    #
# ===================================================================== #


class TestDiagnosisFallback:
    def test_minimal_diagnosis_without_analyzer(self, discovery: WorkDiscovery) -> None:
        validator = EventBus()
        discovery.register_validator(validator)

        validator.publish(
            ValidationFailed(result={"errors": ["HTTP 502 from webhook"], "resourceSid": "CA9"})
        )

        (work,) = discovery.get_queue()
        d = work.diagnosis
        assert d.pattern_id == "minimal"
        assert d.category is RootCauseCategory.UNKNOWN
        assert d.confidence == MINIMAL_DIAGNOSIS_CONFIDENCE
        assert d.root_cause.description == "HTTP 502 from webhook"
        assert work.priority is WorkPriority.LOW
        assert work.tier is AutomationTier.INVESTIGATION
        assert work.resource_sids == ["CA9"]

    def test_minimal_diagnosis_default_description(self, discovery: WorkDiscovery) -> None:
        validator = EventBus()
        discovery.register_validator(validator)
        validator.publish(ValidationFailed())

        (work,) = discovery.get_queue()
        assert work.diagnosis.root_cause.description == "Validation failed without diagnosis"

    def test_analyzer_is_used(self, discovery: WorkDiscovery, code_diagnosis: Diagnosis) -> None:
        analyzer = _FixedAnalyzer(code_diagnosis)
        discovery.set_analyzer(analyzer)
        validator = EventBus()
        discovery.register_validator(validator)

        validator.publish(ValidationFailed(result={"errors": ["boom"]}))

        assert analyzer.seen == [{"errors": ["boom"]}]
        assert discovery.get_queue()[0].diagnosis is code_diagnosis

    def test_failing_analyzer_falls_back(
        self, discovery: WorkDiscovery, caplog: pytest.LogCaptureFixture
    ) -> None:
        discovery.set_analyzer(_BrokenAnalyzer())
        validator = EventBus()
        discovery.register_validator(validator)

        with caplog.at_level(logging.ERROR):
            validator.publish(ValidationFailed(result={"errors": ["boom"]}))

        (work,) = discovery.get_queue()
        assert work.diagnosis.pattern_id == "minimal"
        assert "analyzer offline" in caplog.text


# ===================================================================== #
#  Configuration filters                                                 #
# ===================================================================== #


class TestFilters:
    def test_disabled_discovery_ignores_failures(self, config_diagnosis: Diagnosis) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(enabled=False))
        validator = EventBus()
        discovery.register_validator(validator)

        validator.publish(ValidationFailed(diagnosis=config_diagnosis))
        assert discovery.handle_diagnosis(config_diagnosis) is None
        assert len(discovery) == 0

    def test_disabled_source(self, config_diagnosis: Diagnosis) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(enabled_sources=("user-request",)))
        assert discovery.handle_diagnosis(config_diagnosis) is None
        assert discovery.handle_diagnosis(config_diagnosis, WorkSource.USER_REQUEST) is not None

    def test_min_priority(
        self,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        timing_diagnosis: Diagnosis,
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(min_priority="high"))

        assert discovery.handle_diagnosis(config_diagnosis) is not None
        assert discovery.handle_diagnosis(code_diagnosis) is not None
        assert discovery.handle_diagnosis(timing_diagnosis) is None
        assert [w.priority for w in discovery.get_queue()] == [
            WorkPriority.CRITICAL,
            WorkPriority.HIGH,
        ]

    def test_invalid_config_rejected(self) -> None:
        with pytest.raises(ValueError):
            WorkDiscovery(WorkDiscoveryConfig(max_queue_size=0))


# ===================================================================== #
#  Queue ordering and capacity                                           #
# ===================================================================== #


class TestQueueOrdering:
    def test_empty_queue(self, discovery: WorkDiscovery) -> None:
        assert discovery.get_next_work() is None

    def test_highest_priority_first(
        self,
        discovery: WorkDiscovery,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        unknown_diagnosis: Diagnosis,
    ) -> None:
        discovery.handle_diagnosis(unknown_diagnosis)
        discovery.handle_diagnosis(code_diagnosis)
        critical = discovery.handle_diagnosis(config_diagnosis)

        assert discovery.get_next_work() is critical

    def test_earliest_discovered_breaks_ties(self, discovery: WorkDiscovery) -> None:
        later = DiscoveredWork(make_diagnosis(), priority=WorkPriority.HIGH, discovered_at=200.0)
        earlier = DiscoveredWork(make_diagnosis(), priority=WorkPriority.HIGH, discovered_at=100.0)
        discovery.add_work(later)
        discovery.add_work(earlier)
        assert discovery.get_next_work() is earlier

    def test_insertion_order_breaks_equal_timestamps(self, discovery: WorkDiscovery) -> None:
        first = DiscoveredWork(make_diagnosis(), priority=WorkPriority.HIGH, discovered_at=5.0)
        second = DiscoveredWork(make_diagnosis(), priority=WorkPriority.HIGH, discovered_at=5.0)
        discovery.add_work(first)
        discovery.add_work(second)
        assert discovery.get_next_work() is first

    def test_next_work_skips_started_items(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis, code_diagnosis: Diagnosis
    ) -> None:
        critical = discovery.handle_diagnosis(config_diagnosis)
        high = discovery.handle_diagnosis(code_diagnosis)
        discovery.start_work(critical)
        assert discovery.get_next_work() is high

    def test_get_queue_is_a_copy(self, discovery: WorkDiscovery, config_diagnosis: Diagnosis) -> None:
        discovery.handle_diagnosis(config_diagnosis)
        discovery.get_queue().clear()
        assert len(discovery) == 1

    def test_pending_by_tier(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis, code_diagnosis: Diagnosis
    ) -> None:
        discovery.handle_diagnosis(config_diagnosis)
        discovery.handle_diagnosis(code_diagnosis)
        (tier1,) = discovery.get_pending_by_tier(AutomationTier.AUTOMATED_CONFIG)
        assert tier1.diagnosis is config_diagnosis
        assert len(discovery.get_pending_by_tier(2)) == 1
        assert discovery.get_pending_by_tier(4) == []


class TestCapacity:
    def test_size_never_exceeds_maximum(self, config_diagnosis: Diagnosis) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(max_queue_size=3))
        for _ in range(10):
            discovery.handle_diagnosis(config_diagnosis)
        assert len(discovery) == 3

    def test_terminal_items_evicted_first(
        self, config_diagnosis: Diagnosis, unknown_diagnosis: Diagnosis
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(max_queue_size=2))
        done = discovery.handle_diagnosis(config_diagnosis)
        low = discovery.handle_diagnosis(unknown_diagnosis)
        discovery.start_work(done)
        discovery.complete_work(done, "fixed")

        discovery.handle_diagnosis(config_diagnosis)

        ids = [w.id for w in discovery.get_queue()]
        assert done.id not in ids
        assert low.id in ids

    def test_lowest_priority_evicted_when_all_active(
        self,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        unknown_diagnosis: Diagnosis,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(max_queue_size=2))
        critical = discovery.handle_diagnosis(config_diagnosis)
        low = discovery.handle_diagnosis(unknown_diagnosis)

        with caplog.at_level(logging.WARNING):
            high = discovery.handle_diagnosis(code_diagnosis)

        ids = [w.id for w in discovery.get_queue()]
        assert ids == [critical.id, high.id]
        assert low.id in caplog.text

    def test_in_progress_work_survives_eviction(
        self,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        unknown_diagnosis: Diagnosis,
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(max_queue_size=2))
        active = discovery.handle_diagnosis(unknown_diagnosis)
        discovery.start_work(active)
        critical = discovery.handle_diagnosis(config_diagnosis)

        high = discovery.handle_diagnosis(code_diagnosis)

        ids = [w.id for w in discovery.get_queue()]
        assert ids == [active.id, high.id]
        assert critical.id not in ids
        assert active.status is WorkStatus.IN_PROGRESS

    def test_rejects_new_work_when_everything_in_progress(
        self,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        recorded: EventStore,
        event_bus: EventBus,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(max_queue_size=1), event_bus=event_bus)
        active = discovery.handle_diagnosis(code_diagnosis)
        discovery.start_work(active)

        with caplog.at_level(logging.WARNING):
            rejected = discovery.handle_diagnosis(config_diagnosis)

        assert rejected is None
        assert [w.id for w in discovery.get_queue()] == [active.id]
        assert recorded.names() == ["work-discovered", "work-started"]
        assert "rejected" in caplog.text
        assert discovery.add_work(DiscoveredWork(diagnosis=config_diagnosis)) is False


# ===================================================================== #
#  Lifecycle and events                                                  #
# ===================================================================== #


class TestLifecycle:
    def test_full_lifecycle_publishes_snapshots(
        self, discovery: WorkDiscovery, recorded: EventStore, config_diagnosis: Diagnosis
    ) -> None:
        work = discovery.handle_diagnosis(config_diagnosis)
        discovery.start_work(work, assigned_to="operator")
        discovery.complete_work(work.id, "Updated webhook URL")

        assert recorded.names() == ["work-discovered", "work-started", "work-completed"]
        discovered, started, completed = recorded.query()
        assert discovered.work.status is WorkStatus.PENDING
        assert started.work.status is WorkStatus.IN_PROGRESS
        assert started.work.assigned_to == "operator"
        assert completed.work.resolution == "Updated webhook URL"
        # events hold copies, not the live item
        assert discovered.work is not work
        assert work.status is WorkStatus.COMPLETED

    def test_completed_work_stays_queued(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis
    ) -> None:
        work = discovery.handle_diagnosis(config_diagnosis)
        discovery.start_work(work)
        discovery.complete_work(work, "done")
        assert discovery.get_queue() == [work]
        assert discovery.get_next_work() is None

    def test_escalate_from_pending(
        self, discovery: WorkDiscovery, recorded: EventStore, unknown_diagnosis: Diagnosis
    ) -> None:
        work = discovery.handle_diagnosis(unknown_diagnosis)
        discovery.escalate_work(work, "needs a human")

        assert work.status is WorkStatus.ESCALATED
        assert work.resolution == "Escalated: needs a human"
        (event,) = recorded.query(WorkEscalated)
        assert event.reason == "needs a human"

    def test_illegal_transitions(self, discovery: WorkDiscovery, config_diagnosis: Diagnosis) -> None:
        work = discovery.handle_diagnosis(config_diagnosis)
        with pytest.raises(InvalidWorkTransition):
            discovery.complete_work(work, "too early")

        discovery.start_work(work)
        discovery.complete_work(work, "done")
        with pytest.raises(InvalidWorkTransition):
            discovery.start_work(work)
        with pytest.raises(InvalidWorkTransition):
            discovery.escalate_work(work, "too late")

    def test_unknown_work_id(self, discovery: WorkDiscovery) -> None:
        with pytest.raises(WorkNotFoundError) as excinfo:
            discovery.start_work("work-missing")
        assert excinfo.value.work_id == "work-missing"
        with pytest.raises(KeyError):
            discovery.complete_work("work-missing", "x")

    def test_foreign_item_rejected(self, discovery: WorkDiscovery) -> None:
        with pytest.raises(WorkNotFoundError):
            discovery.escalate_work(DiscoveredWork(make_diagnosis()), "not ours")

    def test_auto_handle_starts_automatable_tiers(
        self,
        event_bus: EventBus,
        recorded: EventStore,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        timing_diagnosis: Diagnosis,
    ) -> None:
        discovery = WorkDiscovery(WorkDiscoveryConfig(auto_handle_low_tier=True), event_bus)
        tier1 = discovery.handle_diagnosis(config_diagnosis)
        tier2 = discovery.handle_diagnosis(code_diagnosis)
        tier3 = discovery.handle_diagnosis(timing_diagnosis)

        assert tier1.status is WorkStatus.IN_PROGRESS
        assert tier1.assigned_to == "auto"
        assert tier2.status is WorkStatus.IN_PROGRESS
        assert tier3.status is WorkStatus.PENDING
        assert len(recorded.query(WorkStarted)) == 2


# ===================================================================== #
#  Stats and shutdown                                                    #
# ===================================================================== #


class TestStatsAndStop:
    def test_stats(
        self,
        discovery: WorkDiscovery,
        config_diagnosis: Diagnosis,
        code_diagnosis: Diagnosis,
        unknown_diagnosis: Diagnosis,
    ) -> None:
        first = discovery.handle_diagnosis(config_diagnosis)
        discovery.handle_diagnosis(code_diagnosis)
        discovery.handle_diagnosis(unknown_diagnosis)
        discovery.start_work(first)

        stats = discovery.get_stats()
        assert stats.queue_size == 3
        assert stats.pending_count == 2
        assert stats.in_progress_count == 1
        assert stats.by_status["completed"] == 0
        assert stats.by_priority == {"critical": 1, "high": 1, "low": 1}
        assert stats.by_tier == {1: 1, 2: 1, 4: 1}
        assert stats.to_dict()["queue_size"] == 3

    def test_empty_stats(self, discovery: WorkDiscovery) -> None:
        stats = discovery.get_stats()
        assert stats.queue_size == 0
        assert set(stats.by_status) == {s.value for s in WorkStatus}

    def test_stop_releases_sources_and_observers(
        self, discovery: WorkDiscovery, event_bus: EventBus, config_diagnosis: Diagnosis
    ) -> None:
        validator = EventBus()
        discovery.register_validator(validator)
        seen: list[WorkDiscovered] = []
        event_bus.subscribe(WorkDiscovered, seen.append)

        discovery.stop()
        discovery.stop()

        validator.publish(ValidationFailed(diagnosis=config_diagnosis))
        assert len(discovery) == 0
        assert discovery.source_count == 0
        assert event_bus.handler_count() == 0

    def test_direct_handling_still_works_after_stop(
        self, discovery: WorkDiscovery, config_diagnosis: Diagnosis
    ) -> None:
        discovery.stop()
        assert discovery.handle_diagnosis(config_diagnosis) is not None
