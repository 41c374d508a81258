"""File-backed storage for completed remediation episodes.

A surrounding orchestrator records every finished fix as a
:class:`PersistedReplayScenario` and later rebuilds
:class:`~remedy_loop.verification.replay.ReplayScenario` fixtures from those
records.  The file is a single JSON array using the camelCase keys of the
persisted format (``workflowType``, ``capturedLearnings``, ...).

Loading never raises on bad data: a missing file, unparsable JSON, a
non-array document, or any record that fails validation all yield an
empty list.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from remedy_loop.domain.enums import RootCauseCategory
from remedy_loop.domain.values import Diagnosis, RootCause
from remedy_loop.verification.replay import Hook, Predicate, ReplayScenario

logger = logging.getLogger(__name__)


# -- Persisted record schema -------------------------------------------------


class PhaseResult(BaseModel):
    """Outcome of one orchestrator phase."""

    success: bool = Field(description="Whether the phase succeeded")
    output: str = Field(default="", description="Raw phase output")


class PersistedReplayScenario(BaseModel):
    """One completed episode as stored on disk."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Episode identifier, reused as the scenario id")
    name: str = Field(description="Human-readable scenario name")
    description: str = Field(default="", description="What went wrong")
    workflow_type: str = Field(alias="workflowType", description="Workflow that fixed it")
    captured_learnings: list[str] = Field(
        default_factory=list,
        alias="capturedLearnings",
        description="Lessons captured while fixing, in order",
    )
    resolution: str = Field(default="", description="What the fix was")
    phase_results: dict[str, PhaseResult] = Field(
        default_factory=dict,
        alias="phaseResults",
        description="Phase name -> result",
    )
    total_cost_usd: float = Field(default=0.0, ge=0, alias="totalCostUsd")
    total_turns: int = Field(default=0, ge=0, alias="totalTurns")
    completed_at: str = Field(alias="completedAt", description="ISO-8601 completion time")

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# -- Store -------------------------------------------------------------------


class ScenarioStore:
    """Reads and writes a JSON array of :class:`PersistedReplayScenario`.

    Parameters
    ----------
    path:
        Location of the JSON file.  Parent directories are created on save.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[PersistedReplayScenario]:
        """Return every stored record, or ``[]`` if the file is unusable."""
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable scenario file %s: %s", self._path, exc)
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring scenario file %s: not a JSON array", self._path)
            return []
        try:
            return [PersistedReplayScenario.model_validate(item) for item in raw]
        except ValidationError as exc:
            logger.warning(
                "Ignoring scenario file %s: %d invalid field(s)",
                self._path,
                exc.error_count(),
            )
            return []

    def save(self, records: list[PersistedReplayScenario]) -> None:
        """Overwrite the file with *records*."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.to_json_dict() for r in records]
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.debug("Saved %d scenario(s) to %s", len(records), self._path)

    def append(self, record: PersistedReplayScenario) -> None:
        """Add *record*, replacing a stored record with the same id."""
        records = [r for r in self.load() if r.id != record.id]
        records.append(record)
        self.save(records)


# -- Fixture reconstruction --------------------------------------------------


def to_replay_scenario(
    record: PersistedReplayScenario,
    validate_success: Predicate,
    setup_failure: Hook | None = None,
    cleanup: Hook | None = None,
    diagnosis: Diagnosis | None = None,
) -> ReplayScenario:
    """Rebuild a replay fixture from a persisted record.

    The record does not store a diagnosis or any behaviour, so the caller
    supplies the predicate and hooks.  Without a *diagnosis* an ``unknown``
    one is synthesised from the record's description and resolution.
    """
    if diagnosis is None:
        diagnosis = Diagnosis(
            pattern_id=record.id,
            summary=record.description or record.name,
            root_cause=RootCause(
                category=RootCauseCategory.UNKNOWN,
                description=record.resolution or record.description,
            ),
        )
    return ReplayScenario(
        id=record.id,
        name=record.name,
        description=record.description,
        diagnosis=diagnosis,
        captured_learnings=tuple(record.captured_learnings),
        resolution=record.resolution,
        validate_success=validate_success,
        setup_failure=setup_failure,
        cleanup=cleanup,
    )
