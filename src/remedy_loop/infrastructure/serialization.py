"""Serialization utilities for the remedy loop.

Provides ``to_dict`` / ``from_dict`` conversion for diagnoses and work
items, and ``to_dict`` for the read-only reports produced by the metrics
collector and the replay verifier.  JSON goes through the standard library,
YAML through PyYAML.

Design goals:
- Every ``to_dict`` output is JSON-serializable (enums become their values,
  tuples become lists, callables are never emitted).
- ``diagnosis_from_dict`` is permissive: unknown categories become
  ``unknown``, missing or non-numeric confidences become ``0``, and keys
  are accepted in either snake_case or the camelCase used by producers.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from typing import Any

import yaml

from remedy_loop.domain.entities import DiscoveredWork
from remedy_loop.domain.enums import (
    AutomationTier,
    FixActionType,
    RootCauseCategory,
    SuggestedWorkflow,
    WorkPriority,
    WorkSource,
    WorkStatus,
)
from remedy_loop.domain.values import (
    Diagnosis,
    Evidence,
    RootCause,
    SuggestedFix,
    ValidationResult,
    clamp_confidence,
)
from remedy_loop.measurement.process_metrics import AggregateMetrics, ProcessMetrics
from remedy_loop.verification.replay import (
    ReplayAttempt,
    ReplayComparison,
    ReplayResult,
    VerificationSummary,
)

logger = logging.getLogger(__name__)


# =========================================================================== #
#  Generic helpers                                                             #
# =========================================================================== #

def _enum_val(v: Any) -> Any:
    """Return the ``.value`` if *v* is an enum member, else *v* unchanged."""
    if hasattr(v, "value"):
        return v.value
    return v


def _get(data: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _enum_or(enum_cls: type, value: Any, default: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _jsonable(value: Any) -> Any:
    """Recursively turn tuples and mappings into lists and dicts."""
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return _enum_val(value)


# =========================================================================== #
#  Diagnosis                                                                   #
# =========================================================================== #

def root_cause_to_dict(rc: RootCause) -> dict[str, Any]:
    return {
        "category": rc.normalized_category.value,
        "description": rc.description,
        "confidence": rc.normalized_confidence,
    }


def root_cause_from_dict(data: Mapping[str, Any]) -> RootCause:
    return RootCause(
        category=_enum_or(RootCauseCategory, data.get("category"), RootCauseCategory.UNKNOWN),
        description=str(data.get("description") or ""),
        confidence=clamp_confidence(data.get("confidence", 0.0)),
    )


def suggested_fix_to_dict(fix: SuggestedFix) -> dict[str, Any]:
    return {
        "description": fix.description,
        "action_type": _enum_val(fix.action_type),
        "confidence": clamp_confidence(fix.confidence),
        "automated": fix.automated is True,
        "steps": list(fix.steps),
    }


def suggested_fix_from_dict(data: Mapping[str, Any]) -> SuggestedFix:
    return SuggestedFix(
        description=str(data.get("description") or ""),
        action_type=_enum_or(
            FixActionType, _get(data, "action_type", "actionType"), FixActionType.ESCALATE
        ),
        confidence=clamp_confidence(data.get("confidence", 0.0)),
        automated=data.get("automated") is True,
        steps=tuple(str(s) for s in data.get("steps") or ()),
    )


def evidence_to_dict(ev: Evidence) -> dict[str, Any]:
    return {"source": ev.source, "data": _jsonable(ev.data), "relevance": ev.relevance}


def evidence_from_dict(data: Mapping[str, Any]) -> Evidence:
    return Evidence(
        source=str(data.get("source") or ""),
        data=data.get("data"),
        relevance=str(data.get("relevance") or "supporting"),
    )


def validation_result_to_dict(vr: ValidationResult) -> dict[str, Any]:
    return {
        "success": vr.success,
        "resource_sid": vr.resource_sid,
        "resource_type": vr.resource_type,
        "primary_status": vr.primary_status,
        "checks": _jsonable(vr.checks),
        "errors": list(vr.errors),
        "warnings": list(vr.warnings),
        "duration": vr.duration,
    }


def validation_result_from_dict(data: Mapping[str, Any]) -> ValidationResult:
    return ValidationResult(
        success=bool(data.get("success", False)),
        resource_sid=str(_get(data, "resource_sid", "resourceSid", "") or ""),
        resource_type=str(_get(data, "resource_type", "resourceType", "") or ""),
        primary_status=str(_get(data, "primary_status", "primaryStatus", "unknown") or "unknown"),
        checks=dict(data.get("checks") or {}),
        errors=tuple(str(e) for e in data.get("errors") or ()),
        warnings=tuple(str(w) for w in data.get("warnings") or ()),
        duration=_as_float(data.get("duration")),
    )


def diagnosis_to_dict(d: Diagnosis) -> dict[str, Any]:
    return {
        "pattern_id": d.pattern_id,
        "summary": d.summary,
        "root_cause": root_cause_to_dict(d.root_cause),
        "evidence": [evidence_to_dict(e) for e in d.evidence],
        "suggested_fixes": [suggested_fix_to_dict(f) for f in d.suggested_fixes],
        "is_known_pattern": d.is_known_pattern,
        "previous_occurrences": d.previous_occurrences,
        "validation_result": validation_result_to_dict(d.validation_result),
        "timestamp": d.timestamp,
    }


def diagnosis_from_dict(data: Mapping[str, Any]) -> Diagnosis:
    """Rebuild a diagnosis from snake_case or camelCase keys."""
    root = _get(data, "root_cause", "rootCause") or {}
    fixes = _get(data, "suggested_fixes", "suggestedFixes") or ()
    validation = _get(data, "validation_result", "validationResult") or {}
    kwargs: dict[str, Any] = {}
    if "timestamp" in data:
        kwargs["timestamp"] = _as_float(data["timestamp"])
    return Diagnosis(
        pattern_id=str(_get(data, "pattern_id", "patternId", "") or ""),
        summary=str(data.get("summary") or ""),
        root_cause=root_cause_from_dict(root) if isinstance(root, Mapping) else RootCause(),
        evidence=tuple(
            evidence_from_dict(e) for e in data.get("evidence") or () if isinstance(e, Mapping)
        ),
        suggested_fixes=tuple(
            suggested_fix_from_dict(f) for f in fixes if isinstance(f, Mapping)
        ),
        is_known_pattern=bool(_get(data, "is_known_pattern", "isKnownPattern", False)),
        previous_occurrences=int(
            _as_float(_get(data, "previous_occurrences", "previousOccurrences", 0))
        ),
        validation_result=(
            validation_result_from_dict(validation)
            if isinstance(validation, Mapping)
            else ValidationResult()
        ),
        **kwargs,
    )


# =========================================================================== #
#  Work items                                                                  #
# =========================================================================== #

def discovered_work_to_dict(w: DiscoveredWork) -> dict[str, Any]:
    return {
        "id": w.id,
        "source": _enum_val(w.source),
        "priority": _enum_val(w.priority),
        "tier": int(w.tier),
        "suggested_workflow": _enum_val(w.suggested_workflow),
        "status": _enum_val(w.status),
        "summary": w.summary,
        "description": w.description,
        "discovered_at": w.discovered_at,
        "resource_sids": list(w.resource_sids),
        "tags": list(w.tags),
        "assigned_to": w.assigned_to,
        "started_at": w.started_at,
        "completed_at": w.completed_at,
        "resolution": w.resolution,
        "diagnosis": diagnosis_to_dict(w.diagnosis),
    }


def discovered_work_from_dict(data: Mapping[str, Any]) -> DiscoveredWork:
    return DiscoveredWork(
        id=str(data["id"]),
        diagnosis=diagnosis_from_dict(data.get("diagnosis") or {}),
        source=WorkSource(data.get("source", WorkSource.VALIDATION_FAILURE.value)),
        priority=WorkPriority(data.get("priority", WorkPriority.LOW.value)),
        tier=AutomationTier(int(data.get("tier", AutomationTier.INVESTIGATION))),
        suggested_workflow=SuggestedWorkflow(
            data.get("suggested_workflow", SuggestedWorkflow.INVESTIGATION.value)
        ),
        status=WorkStatus(data.get("status", WorkStatus.PENDING.value)),
        summary=str(data.get("summary") or ""),
        description=str(data.get("description") or ""),
        discovered_at=_as_float(data.get("discovered_at")),
        resource_sids=[str(s) for s in data.get("resource_sids") or ()],
        tags=[str(t) for t in data.get("tags") or ()],
        assigned_to=data.get("assigned_to"),
        started_at=data.get("started_at"),
        completed_at=data.get("completed_at"),
        resolution=data.get("resolution"),
    )


# =========================================================================== #
#  Reports                                                                     #
# =========================================================================== #

def process_metrics_to_dict(m: ProcessMetrics) -> dict[str, Any]:
    return {
        "id": m.id,
        "work_id": m.work_id,
        "resource_sid": m.resource_sid,
        "resource_type": m.resource_type,
        "timing": asdict(m.timing),
        "quality": asdict(m.quality),
        "learning": asdict(m.learning),
        "diagnosis": diagnosis_to_dict(m.diagnosis),
        "resolution": m.resolution,
        "workflow_used": m.workflow_used,
        "started_at": m.started_at,
        "completed_at": m.completed_at,
    }


def aggregate_metrics_to_dict(a: AggregateMetrics) -> dict[str, Any]:
    return a.to_dict()


def replay_attempt_to_dict(a: ReplayAttempt) -> dict[str, Any]:
    return {
        "attempt": a.attempt,
        "duration_ms": a.duration_ms,
        "success": a.success,
        "error": a.error,
        "actions": list(a.actions),
        "timed_out": a.timed_out,
    }


def replay_result_to_dict(r: ReplayResult) -> dict[str, Any]:
    return {
        "scenario_id": r.scenario_id,
        "with_learnings": r.with_learnings,
        "success": r.success,
        "total_attempts": r.total_attempts,
        "total_duration_ms": r.total_duration_ms,
        "attempts": [replay_attempt_to_dict(a) for a in r.attempts],
        "started_at": r.started_at,
        "completed_at": r.completed_at,
    }


def replay_comparison_to_dict(c: ReplayComparison) -> dict[str, Any]:
    return {
        "scenario_id": c.scenario_id,
        "scenario_name": c.scenario_name,
        "outcome": _enum_val(c.outcome),
        "baseline": replay_result_to_dict(c.baseline),
        "enhanced": replay_result_to_dict(c.enhanced),
        "improvement": asdict(c.improvement),
        "timestamp": c.timestamp,
    }


def verification_summary_to_dict(s: VerificationSummary) -> dict[str, Any]:
    return {
        "total_scenarios": s.total_scenarios,
        "scenarios_improved": s.scenarios_improved,
        "scenarios_enabled_success": s.scenarios_enabled_success,
        "scenarios_no_difference": s.scenarios_no_difference,
        "scenarios_hurt": s.scenarios_hurt,
        "avg_time_improvement_percent": s.avg_time_improvement_percent,
        "avg_attempts_improvement_percent": s.avg_attempts_improvement_percent,
        "success_rate_with_learnings": s.success_rate_with_learnings,
        "success_rate_without_learnings": s.success_rate_without_learnings,
        "comparisons": [replay_comparison_to_dict(c) for c in s.comparisons],
    }


# =========================================================================== #
#  Unified serializer                                                          #
# =========================================================================== #

# Maps type -> (to_dict_fn, from_dict_fn)
_SERIALIZERS: dict[type, tuple[Any, Any]] = {
    RootCause: (root_cause_to_dict, root_cause_from_dict),
    SuggestedFix: (suggested_fix_to_dict, suggested_fix_from_dict),
    Evidence: (evidence_to_dict, evidence_from_dict),
    ValidationResult: (validation_result_to_dict, validation_result_from_dict),
    Diagnosis: (diagnosis_to_dict, diagnosis_from_dict),
    DiscoveredWork: (discovered_work_to_dict, discovered_work_from_dict),
    ProcessMetrics: (process_metrics_to_dict, None),
    AggregateMetrics: (aggregate_metrics_to_dict, None),
    ReplayAttempt: (replay_attempt_to_dict, None),
    ReplayResult: (replay_result_to_dict, None),
    ReplayComparison: (replay_comparison_to_dict, None),
    VerificationSummary: (verification_summary_to_dict, None),
}


def serialize(obj: Any) -> dict[str, Any]:
    """Serialize a known domain or report object to a dict.

    Objects with their own ``to_dict`` (configs, ``QueueStats``) and plain
    dataclasses are accepted too.  Raises ``TypeError`` otherwise.
    """
    ser = _SERIALIZERS.get(type(obj))
    if ser is not None:
        to_fn, _ = ser
        return to_fn(obj)
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return obj.to_dict()
    if is_dataclass(obj) and not isinstance(obj, type):
        return _jsonable(asdict(obj))
    raise TypeError(f"Cannot serialize object of type {type(obj).__name__}")


def deserialize(data: Mapping[str, Any], target_type: type) -> Any:
    """Deserialize a dict into *target_type*.

    Report types are output-only and raise ``TypeError``.
    """
    ser = _SERIALIZERS.get(target_type)
    if ser is not None and ser[1] is not None:
        return ser[1](data)
    if ser is None and hasattr(target_type, "from_dict"):
        return target_type.from_dict(dict(data))
    raise TypeError(f"No deserializer registered for {target_type.__name__}")


# =========================================================================== #
#  JSON / YAML helpers                                                         #
# =========================================================================== #

def to_json(obj: Any, *, indent: int | None = 2) -> str:
    """Serialize a domain or report object to a JSON string."""
    return json.dumps(serialize(obj), indent=indent, default=str)


def from_json(json_str: str, target_type: type) -> Any:
    return deserialize(json.loads(json_str), target_type)


def to_yaml(obj: Any) -> str:
    """Serialize a domain or report object to a YAML string."""
    # round-trip through JSON so YAML only ever sees plain builtins
    plain = json.loads(json.dumps(serialize(obj), default=str))
    return yaml.safe_dump(plain, default_flow_style=False, sort_keys=False)


def from_yaml(yaml_str: str, target_type: type) -> Any:
    data = yaml.safe_load(yaml_str)
    if not isinstance(data, Mapping):
        raise ValueError("YAML document must be a mapping")
    return deserialize(data, target_type)
