"""Value objects for the remedy loop.

All types here are frozen dataclasses, immutable and compared by value.
A ``Diagnosis`` is produced once per validation failure by an external
diagnostic component and is never mutated afterwards.

Construction is deliberately permissive: a diagnosis arriving from an
external producer may carry out-of-range confidences or categories this
package does not know.  :func:`category_of` and :func:`confidence_of` normalise
such input to the most conservative values instead of rejecting it here.
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .enums import FixActionType, RootCauseCategory

# ---------------------------------------------------------------------------
# RootCause
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RootCause:
    """Root-cause classification attached to a diagnosis."""

    category: RootCauseCategory | str = RootCauseCategory.UNKNOWN
    description: str = ""
    confidence: float = 0.0

    @property
    def normalized_category(self) -> RootCauseCategory:
        """The category as an enum member; anything unrecognised is UNKNOWN."""
        return normalize_category(self.category)

    @property
    def normalized_confidence(self) -> float:
        """The confidence clamped to [0, 1]; non-numeric or NaN becomes 0."""
        return clamp_confidence(self.confidence)


# ---------------------------------------------------------------------------
# SuggestedFix
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SuggestedFix:
    """A remediation the diagnostic component proposes."""

    description: str = ""
    action_type: FixActionType = FixActionType.ESCALATE
    confidence: float = 0.0
    automated: bool = False
    steps: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Evidence:
    """A piece of evidence supporting a diagnosis."""

    source: str = ""
    data: Any = None
    relevance: str = "supporting"  # "primary" | "supporting"


# ---------------------------------------------------------------------------
# ValidationResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the validation that triggered the diagnosis."""

    success: bool = False
    resource_sid: str = ""
    resource_type: str = ""
    primary_status: str = "unknown"
    checks: Mapping[str, Any] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    duration: float = 0.0


# ---------------------------------------------------------------------------
# Diagnosis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Diagnosis:
    """Structured explanation of why a monitored operation failed."""

    pattern_id: str = ""
    summary: str = ""
    root_cause: RootCause = field(default_factory=RootCause)
    evidence: tuple[Evidence, ...] = ()
    suggested_fixes: tuple[SuggestedFix, ...] = ()
    is_known_pattern: bool = False
    previous_occurrences: int = 0
    validation_result: ValidationResult = field(default_factory=ValidationResult)
    timestamp: float = field(default_factory=time.time)

    @property
    def category(self) -> RootCauseCategory:
        return category_of(self)

    @property
    def confidence(self) -> float:
        return confidence_of(self)


def normalize_category(raw: Any) -> RootCauseCategory:
    """Map a raw category value onto the enum; unknown input is UNKNOWN."""
    if isinstance(raw, RootCauseCategory):
        return raw
    try:
        return RootCauseCategory(raw)
    except ValueError:
        return RootCauseCategory.UNKNOWN


def category_of(diagnosis: Any) -> RootCauseCategory:
    """Root-cause category of any diagnosis-shaped object."""
    return normalize_category(getattr(getattr(diagnosis, "root_cause", None), "category", None))


def confidence_of(diagnosis: Any) -> float:
    """Root-cause confidence of any diagnosis-shaped object, clamped to [0, 1]."""
    return clamp_confidence(getattr(getattr(diagnosis, "root_cause", None), "confidence", 0.0))


def clamp_confidence(value: Any) -> float:
    """Coerce *value* to a float in [0, 1].  Garbage maps to 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v):
        return 0.0
    return min(1.0, max(0.0, v))
