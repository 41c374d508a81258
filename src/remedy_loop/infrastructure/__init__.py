"""Infrastructure layer for the remedy loop.

Re-exports the event bus and configuration API for convenience::

    from remedy_loop.infrastructure import (
        EventBus, EventStore,
        WorkDiscoveryConfig, ProcessMetricsConfig, ReplayVerifierConfig,
        RemedyLoopConfig, load_config_from_json, load_config_from_yaml,
    )

``serialization`` and ``scenario_store`` depend on the measurement and
verification layers and are imported from their own modules.
"""

from remedy_loop.infrastructure.config import (
    ProcessMetricsConfig,
    RemedyLoopConfig,
    ReplayVerifierConfig,
    WorkDiscoveryConfig,
    load_config_from_json,
    load_config_from_yaml,
)
from remedy_loop.infrastructure.event_bus import (
    EventBus,
    EventStore,
)

__all__ = [
    # Event bus
    "EventBus",
    "EventStore",
    # Configuration
    "WorkDiscoveryConfig",
    "ProcessMetricsConfig",
    "ReplayVerifierConfig",
    "RemedyLoopConfig",
    "load_config_from_json",
    "load_config_from_yaml",
]
