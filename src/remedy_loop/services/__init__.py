"""Service layer for the remedy loop.

Re-exports the classification functions and the work queue::

    from remedy_loop.services import (
        determine_priority, determine_automation_tier, suggest_workflow,
        create_work_from_diagnosis, WorkDiscovery, QueueStats,
    )
"""

from remedy_loop.services.classification import (
    create_work_from_diagnosis,
    determine_automation_tier,
    determine_priority,
    extract_resource_sids,
    format_work_description,
    suggest_workflow,
)
from remedy_loop.services.work_discovery import (
    DiagnosisAnalyzer,
    DiagnosisSource,
    QueueStats,
    WorkDiscovery,
)

__all__ = [
    "create_work_from_diagnosis",
    "determine_automation_tier",
    "determine_priority",
    "extract_resource_sids",
    "format_work_description",
    "suggest_workflow",
    "DiagnosisAnalyzer",
    "DiagnosisSource",
    "QueueStats",
    "WorkDiscovery",
]
