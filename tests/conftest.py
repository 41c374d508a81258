"""Shared fixtures for the remedy loop test suite."""

from __future__ import annotations

import pytest

from remedy_loop.domain.enums import RootCauseCategory
from remedy_loop.domain.events import DomainEvent
from remedy_loop.domain.values import Diagnosis
from remedy_loop.infrastructure.config import ReplayVerifierConfig
from remedy_loop.infrastructure.event_bus import EventBus, EventStore
from remedy_loop.testing import ScriptedExecutor, make_diagnosis

# ---------------------------------------------------------------------------
# Diagnosis fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config_diagnosis() -> Diagnosis:
    """Configuration issue, confidence 0.9, one automated fix."""
    return make_diagnosis(RootCauseCategory.CONFIGURATION, 0.9, automated=True)


@pytest.fixture
def code_diagnosis() -> Diagnosis:
    """Code issue, confidence 0.7, one automated fix."""
    return make_diagnosis(RootCauseCategory.CODE, 0.7, automated=True, pattern_id="code-1")


@pytest.fixture
def timing_diagnosis() -> Diagnosis:
    return make_diagnosis(
        RootCauseCategory.TIMING, 0.8, automated=False, fix_confidence=0.9, pattern_id="timing-1"
    )


@pytest.fixture
def unknown_diagnosis() -> Diagnosis:
    return make_diagnosis(RootCauseCategory.UNKNOWN, 0.2, with_fix=False, pattern_id="unk-1")


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(event_bus: EventBus) -> EventStore:
    """EventStore wired to ``event_bus`` that records every event."""
    store = EventStore()
    event_bus.subscribe_all(store.append)
    return store


@pytest.fixture
def fast_replay_config() -> ReplayVerifierConfig:
    """No inter-attempt delay, generous timeout."""
    return ReplayVerifierConfig(max_attempts=5, attempt_timeout_ms=1_000, attempt_delay_ms=0)


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def received() -> list[DomainEvent]:
    return []
