"""Diagnosis classification.

Turns a :class:`~remedy_loop.domain.values.Diagnosis` into the three routing
decisions a :class:`~remedy_loop.domain.entities.DiscoveredWork` carries:

* **priority** -- how urgently the failure needs attention,
* **automation tier** -- how much of the remediation can run unattended,
* **suggested workflow** -- which remediation workflow fits.

Every function here is total.  A diagnosis with a missing or unrecognised
category, a non-numeric confidence, or a malformed fix list is routed to the
most conservative bucket (low priority, tier 4, investigation) rather than
rejected, so no failure is ever dropped or silently auto-remediated.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from remedy_loop.domain.entities import DiscoveredWork
from remedy_loop.domain.enums import (
    AutomationTier,
    RootCauseCategory,
    SuggestedWorkflow,
    WorkPriority,
    WorkSource,
)
from remedy_loop.domain.values import Diagnosis, category_of, clamp_confidence, confidence_of

logger = logging.getLogger(__name__)

#: Below this root-cause confidence a diagnosis is always low priority.
LOW_CONFIDENCE_THRESHOLD = 0.5
#: Tier 1 needs at least this much confidence in a configuration diagnosis.
TIER1_CONFIDENCE_THRESHOLD = 0.8
#: A suggested fix is "usable" when its confidence is strictly above this.
USABLE_FIX_THRESHOLD = 0.5

_SID_KEYS = ("sid", "resourceSid", "resource_sid", "callSid", "messageSid")


# ---------------------------------------------------------------------------
# Field accessors
# ---------------------------------------------------------------------------

def _fixes(diagnosis: Any) -> list[Any]:
    fixes = getattr(diagnosis, "suggested_fixes", None)
    if not isinstance(fixes, Iterable) or isinstance(fixes, (str, bytes)):
        return []
    return list(fixes)


def _has_automated_fix(diagnosis: Any) -> bool:
    return any(getattr(f, "automated", False) is True for f in _fixes(diagnosis))


def _has_usable_fix(diagnosis: Any) -> bool:
    return any(
        clamp_confidence(getattr(f, "confidence", 0.0)) > USABLE_FIX_THRESHOLD
        for f in _fixes(diagnosis)
    )


# ---------------------------------------------------------------------------
# Routing decisions
# ---------------------------------------------------------------------------

def determine_priority(diagnosis: Diagnosis) -> WorkPriority:
    """Priority from root-cause category, demoted to LOW on weak confidence."""
    category = category_of(diagnosis)
    if category is RootCauseCategory.UNKNOWN:
        return WorkPriority.LOW
    if confidence_of(diagnosis) < LOW_CONFIDENCE_THRESHOLD:
        return WorkPriority.LOW

    if category is RootCauseCategory.CONFIGURATION:
        return WorkPriority.CRITICAL
    if category is RootCauseCategory.CODE:
        return WorkPriority.HIGH
    # external and timing
    return WorkPriority.MEDIUM


def determine_automation_tier(diagnosis: Diagnosis) -> AutomationTier:
    """Automation tier.

    * Tier 1: configuration issue, confidence >= 0.8, automated fix available.
    * Tier 2: code issue with at least one automated fix.
    * Tier 3: any suggested fix with confidence > 0.5, automated or not.
    * Tier 4: everything else, and always for unknown categories.
    """
    category = category_of(diagnosis)
    if category is RootCauseCategory.UNKNOWN:
        return AutomationTier.INVESTIGATION

    automated = _has_automated_fix(diagnosis)
    if (
        category is RootCauseCategory.CONFIGURATION
        and automated
        and confidence_of(diagnosis) >= TIER1_CONFIDENCE_THRESHOLD
    ):
        return AutomationTier.AUTOMATED_CONFIG
    if category is RootCauseCategory.CODE and automated:
        return AutomationTier.AUTOMATED_CODE
    if _has_usable_fix(diagnosis):
        return AutomationTier.HUMAN_REVIEW
    return AutomationTier.INVESTIGATION


def suggest_workflow(diagnosis: Diagnosis) -> SuggestedWorkflow:
    """Remediation workflow for the diagnosis.

    Timing problems always need investigation, whatever fixes are suggested.
    """
    category = category_of(diagnosis)
    if category in (RootCauseCategory.CONFIGURATION, RootCauseCategory.CODE):
        return SuggestedWorkflow.BUG_FIX
    if category is RootCauseCategory.EXTERNAL and _has_usable_fix(diagnosis):
        return SuggestedWorkflow.MANUAL_REVIEW
    return SuggestedWorkflow.INVESTIGATION


# ---------------------------------------------------------------------------
# Work construction
# ---------------------------------------------------------------------------

def create_work_from_diagnosis(
    diagnosis: Diagnosis,
    source: WorkSource = WorkSource.VALIDATION_FAILURE,
) -> DiscoveredWork:
    """Classify *diagnosis* and wrap it in a pending ``DiscoveredWork``."""
    priority = determine_priority(diagnosis)
    tier = determine_automation_tier(diagnosis)
    workflow = suggest_workflow(diagnosis)
    category = category_of(diagnosis)
    pattern_id = getattr(diagnosis, "pattern_id", "") or "unpatterned"

    work = DiscoveredWork(
        id=f"work-{pattern_id}-{uuid.uuid4().hex[:8]}",
        diagnosis=diagnosis,
        source=source,
        priority=priority,
        tier=tier,
        suggested_workflow=workflow,
        summary=getattr(diagnosis, "summary", "") or f"{category.value} failure",
        description=format_work_description(diagnosis),
        resource_sids=extract_resource_sids(diagnosis),
        tags=[category.value, workflow.value],
    )
    logger.debug(
        "Classified %s: priority=%s tier=%d workflow=%s",
        work.id,
        priority.value,
        tier,
        workflow.value,
    )
    return work


def format_work_description(diagnosis: Diagnosis) -> str:
    """Render a Markdown description of *diagnosis* for human reviewers."""
    root = getattr(diagnosis, "root_cause", None)
    lines = [
        f"**Root Cause**: {getattr(root, 'description', '') or 'n/a'}",
        f"**Category**: {category_of(diagnosis).value}",
        f"**Confidence**: {confidence_of(diagnosis) * 100:.0f}%",
        "",
        "**Evidence**:",
    ]
    for ev in getattr(diagnosis, "evidence", None) or ():
        lines.append(f"- {getattr(ev, 'source', '?')}: {getattr(ev, 'relevance', '?')}")
    lines += ["", "**Suggested Fixes**:"]
    for fix in _fixes(diagnosis):
        action = getattr(fix, "action_type", "")
        action = getattr(action, "value", action)
        lines.append(
            f"- [{action}] {getattr(fix, 'description', '')} "
            f"(confidence: {clamp_confidence(getattr(fix, 'confidence', 0.0)) * 100:.0f}%, "
            f"automated: {str(getattr(fix, 'automated', False) is True).lower()})"
        )
    if getattr(diagnosis, "is_known_pattern", False):
        lines += [
            "",
            "**Note**: This is a known pattern "
            f"(seen {getattr(diagnosis, 'previous_occurrences', 0)} times before)",
        ]
    return "\n".join(lines)


def extract_resource_sids(diagnosis: Diagnosis) -> list[str]:
    """Collect resource identifiers from the validation result and evidence.

    Order of first appearance is preserved; duplicates are dropped.
    """
    sids: list[str] = []
    result_sid = getattr(getattr(diagnosis, "validation_result", None), "resource_sid", "")
    if isinstance(result_sid, str) and result_sid:
        sids.append(result_sid)

    for ev in getattr(diagnosis, "evidence", None) or ():
        data = getattr(ev, "data", None)
        if not isinstance(data, dict):
            continue
        for key in _SID_KEYS:
            value = data.get(key)
            if isinstance(value, str) and value:
                sids.append(value)

    return list(dict.fromkeys(sids))
