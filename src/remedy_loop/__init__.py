"""Remedy Loop.

Autonomous fix-cycle infrastructure: classify validation failures into
prioritised work, measure how remediation cycles perform, and replay past
failures to check whether captured learnings actually help.
"""

__version__ = "0.1.0"

from remedy_loop.domain import (
    AutomationTier,
    Diagnosis,
    DiscoveredWork,
    RootCauseCategory,
    ScenarioOutcome,
    SuggestedWorkflow,
    ValidationFailed,
    WorkPriority,
    WorkStatus,
)
from remedy_loop.infrastructure import (
    EventBus,
    ProcessMetricsConfig,
    RemedyLoopConfig,
    ReplayVerifierConfig,
    WorkDiscoveryConfig,
)
from remedy_loop.measurement import CycleQuality, ProcessMetricsCollector
from remedy_loop.services import WorkDiscovery
from remedy_loop.verification import ReplayScenario, ReplayVerifier

__all__ = [
    "AutomationTier",
    "Diagnosis",
    "DiscoveredWork",
    "RootCauseCategory",
    "ScenarioOutcome",
    "SuggestedWorkflow",
    "ValidationFailed",
    "WorkPriority",
    "WorkStatus",
    "EventBus",
    "ProcessMetricsConfig",
    "RemedyLoopConfig",
    "ReplayVerifierConfig",
    "WorkDiscoveryConfig",
    "CycleQuality",
    "ProcessMetricsCollector",
    "WorkDiscovery",
    "ReplayScenario",
    "ReplayVerifier",
]
