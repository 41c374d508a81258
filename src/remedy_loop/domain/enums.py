"""Domain enumerations for the remedy loop.

These enums capture the fixed vocabularies used across the domain layer:
root-cause categories, fix action kinds, work sources, priorities,
automation tiers, suggested workflows, work statuses, and replay outcomes.
"""

from enum import Enum, IntEnum


class RootCauseCategory(Enum):
    """Classification of why a monitored operation failed."""

    CONFIGURATION = "configuration"
    CODE = "code"
    EXTERNAL = "external"  # carrier / third-party
    TIMING = "timing"
    UNKNOWN = "unknown"


class FixActionType(Enum):
    """Kind of action a suggested fix performs."""

    CONFIG = "config"
    CODE = "code"
    WAIT = "wait"
    ESCALATE = "escalate"


class WorkSource(Enum):
    """Where a unit of discovered work came from."""

    VALIDATION_FAILURE = "validation-failure"
    DEBUGGER_ALERT = "debugger-alert"
    USER_REQUEST = "user-request"
    SCHEDULED = "scheduled"
    WEBHOOK_ERROR = "webhook-error"


class WorkPriority(Enum):
    """Priority of a work item.  Declaration order is urgency order."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 for critical up to 3 for low."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {p: i for i, p in enumerate(WorkPriority)}


class AutomationTier(IntEnum):
    """Automation feasibility (1 = fully automatable, 4 = needs investigation)."""

    AUTOMATED_CONFIG = 1
    AUTOMATED_CODE = 2
    HUMAN_REVIEW = 3
    INVESTIGATION = 4


class SuggestedWorkflow(Enum):
    """Remediation workflow suggested for a work item."""

    BUG_FIX = "bug-fix"
    MANUAL_REVIEW = "manual-review"
    INVESTIGATION = "investigation"


class WorkStatus(Enum):
    """Lifecycle status of a ``DiscoveredWork`` item."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ESCALATED = "escalated"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkStatus.COMPLETED, WorkStatus.ESCALATED)


class ScenarioOutcome(Enum):
    """Bucket a replay comparison falls into."""

    IMPROVED = "improved"
    ENABLED_SUCCESS = "enabled_success"
    NO_DIFFERENCE = "no_difference"
    HURT = "hurt"
