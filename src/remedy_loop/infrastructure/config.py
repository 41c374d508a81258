"""Configuration dataclasses for the remedy loop.

Each config is a frozen ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid values, plus ``to_dict`` / ``from_dict`` helpers.
``from_dict`` ignores unknown keys and validates the result, so configs can
be loaded from hand-edited JSON or YAML documents.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any

import yaml

from remedy_loop.domain.enums import WorkPriority, WorkSource

_ALL_SOURCES: tuple[str, ...] = tuple(s.value for s in WorkSource)
_PRIORITIES = frozenset(p.value for p in WorkPriority)


# ===================================================================== #
#  Work discovery                                                        #
# ===================================================================== #

@dataclass(frozen=True)
class WorkDiscoveryConfig:
    """Parameters for the work discovery queue.

    Attributes
    ----------
    enabled:
        When ``False`` incoming validation failures are ignored.
    max_queue_size:
        Maximum number of items kept in the queue.  When full, one terminal
        or pending item is evicted before a new one is enqueued; if every
        item is in progress the new one is rejected.
    auto_handle_low_tier:
        Start tier 1 and tier 2 items immediately after discovery.
    enabled_sources:
        Work sources that are accepted.  Defaults to all of them.
    min_priority:
        Items below this priority are not enqueued.
    """

    enabled: bool = True
    max_queue_size: int = 100
    auto_handle_low_tier: bool = False
    enabled_sources: tuple[str, ...] = _ALL_SOURCES
    min_priority: str = WorkPriority.LOW.value

    def __post_init__(self) -> None:
        # lists coming from JSON/YAML are coerced so the config stays hashable
        if not isinstance(self.enabled_sources, tuple):
            object.__setattr__(self, "enabled_sources", tuple(self.enabled_sources or ()))

    def validate(self) -> None:
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got {self.max_queue_size}")
        unknown = [s for s in self.enabled_sources if s not in _ALL_SOURCES]
        if unknown:
            raise ValueError(
                f"enabled_sources must be drawn from {sorted(_ALL_SOURCES)}, "
                f"got unknown {unknown}"
            )
        if self.min_priority not in _PRIORITIES:
            raise ValueError(
                f"min_priority must be one of {sorted(_PRIORITIES)}, "
                f"got '{self.min_priority}'"
            )

    def accepts(self, source: WorkSource) -> bool:
        """True when work from *source* should be processed."""
        return self.enabled and source.value in self.enabled_sources

    @property
    def min_priority_level(self) -> WorkPriority:
        return WorkPriority(self.min_priority)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["enabled_sources"] = list(self.enabled_sources)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkDiscoveryConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Process metrics                                                       #
# ===================================================================== #

@dataclass(frozen=True)
class ProcessMetricsConfig:
    """Parameters for the process metrics collector.

    Attributes
    ----------
    max_stored_cycles:
        Sealed cycles kept in memory; older ones are dropped first.
    """

    max_stored_cycles: int = 1000

    def validate(self) -> None:
        if self.max_stored_cycles < 1:
            raise ValueError(
                f"max_stored_cycles must be >= 1, got {self.max_stored_cycles}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProcessMetricsConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Replay verifier                                                       #
# ===================================================================== #

@dataclass(frozen=True)
class ReplayVerifierConfig:
    """Parameters for replay verification.

    Attributes
    ----------
    max_attempts:
        Upper bound on fix attempts per replay.
    attempt_timeout_ms:
        Budget for a single executor call.  An attempt that exceeds it is
        recorded as failed.
    attempt_delay_ms:
        Pause between a failed attempt and the next one.  ``0`` for tests.
    time_tolerance_ms:
        Elapsed-time differences at or below this value count as a tie when
        comparing baseline and enhanced runs with equal attempt counts.
    """

    max_attempts: int = 5
    attempt_timeout_ms: float = 30_000.0
    attempt_delay_ms: float = 1_000.0
    time_tolerance_ms: float = 0.0

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.attempt_timeout_ms <= 0:
            raise ValueError(
                f"attempt_timeout_ms must be > 0, got {self.attempt_timeout_ms}"
            )
        if self.attempt_delay_ms < 0:
            raise ValueError(
                f"attempt_delay_ms must be >= 0, got {self.attempt_delay_ms}"
            )
        if self.time_tolerance_ms < 0:
            raise ValueError(
                f"time_tolerance_ms must be >= 0, got {self.time_tolerance_ms}"
            )

    @property
    def worst_case_ms(self) -> float:
        """Upper bound on the duration of one replay, excluding predicate time."""
        return self.max_attempts * (self.attempt_timeout_ms + self.attempt_delay_ms)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplayVerifierConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Unified config loader                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class RemedyLoopConfig:
    """All three component configs together."""

    discovery: WorkDiscoveryConfig = field(default_factory=WorkDiscoveryConfig)
    metrics: ProcessMetricsConfig = field(default_factory=ProcessMetricsConfig)
    replay: ReplayVerifierConfig = field(default_factory=ReplayVerifierConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "discovery": self.discovery.to_dict(),
            "metrics": self.metrics.to_dict(),
            "replay": self.replay.to_dict(),
        }

    @classmethod
    def from_sections(cls, sections: dict[str, Any]) -> RemedyLoopConfig:
        """Build from the output of :func:`load_config_from_json` / ``_yaml``."""
        kwargs = {
            k: v for k, v in sections.items() if isinstance(v, _CONFIG_MAP.get(k, ()))
        }
        return cls(**kwargs)


_CONFIG_MAP: dict[str, type] = {
    "discovery": WorkDiscoveryConfig,
    "metrics": ProcessMetricsConfig,
    "replay": ReplayVerifierConfig,
}


def _load_sections(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("Top-level config document must be a mapping")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    The JSON is expected to be an object whose top-level keys correspond to
    config section names (``discovery``, ``metrics``, ``replay``).  Unknown
    sections are preserved as raw values.
    """
    return _load_sections(json.loads(json_str))


def load_config_from_yaml(yaml_str: str) -> dict[str, Any]:
    """YAML counterpart of :func:`load_config_from_json`."""
    return _load_sections(yaml.safe_load(yaml_str))
