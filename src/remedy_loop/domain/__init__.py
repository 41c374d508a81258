"""Domain layer for the remedy loop.

Re-exports all public domain types so that consumers can write::

    from remedy_loop.domain import Diagnosis, DiscoveredWork, WorkPriority
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    AutomationTier,
    FixActionType,
    RootCauseCategory,
    ScenarioOutcome,
    SuggestedWorkflow,
    WorkPriority,
    WorkSource,
    WorkStatus,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    Diagnosis,
    Evidence,
    RootCause,
    SuggestedFix,
    ValidationResult,
    clamp_confidence,
)

# -- Entities -----------------------------------------------------------------
from .entities import DiscoveredWork

# -- Domain Events ------------------------------------------------------------
from .events import (
    ComparisonCompleted,
    CycleCompleted,
    CycleStarted,
    DomainEvent,
    FixAttempted,
    LearningCaptured,
    ReplayAttemptRecorded,
    ReplayCompleted,
    ReplayStarted,
    ValidationFailed,
    VerificationCompleted,
    WorkCompleted,
    WorkDiscovered,
    WorkEscalated,
    WorkStarted,
    event_names,
    event_type_for,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    CycleNotFoundError,
    ExecutorNotSetError,
    InvalidWorkTransition,
    RemedyLoopError,
    ScenarioNotFoundError,
    WorkNotFoundError,
)

__all__ = [
    # Enums
    "AutomationTier",
    "FixActionType",
    "RootCauseCategory",
    "ScenarioOutcome",
    "SuggestedWorkflow",
    "WorkPriority",
    "WorkSource",
    "WorkStatus",
    # Values
    "Diagnosis",
    "Evidence",
    "RootCause",
    "SuggestedFix",
    "ValidationResult",
    "clamp_confidence",
    # Entities
    "DiscoveredWork",
    # Events
    "DomainEvent",
    "ValidationFailed",
    "WorkDiscovered",
    "WorkStarted",
    "WorkCompleted",
    "WorkEscalated",
    "CycleStarted",
    "FixAttempted",
    "LearningCaptured",
    "CycleCompleted",
    "ReplayStarted",
    "ReplayAttemptRecorded",
    "ReplayCompleted",
    "ComparisonCompleted",
    "VerificationCompleted",
    "event_names",
    "event_type_for",
    # Exceptions
    "RemedyLoopError",
    "InvalidWorkTransition",
    "ScenarioNotFoundError",
    "WorkNotFoundError",
    "ExecutorNotSetError",
    "CycleNotFoundError",
]
