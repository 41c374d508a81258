"""Measurement layer for the remedy loop.

Public API
----------
- :class:`ProcessMetricsCollector` -- open/record/seal fix cycles
- :class:`ProcessMetrics` and its groups ``TimingMetrics``,
  ``QualityMetrics``, ``LearningMetrics``
- :class:`CycleQuality` -- caller judgement passed at completion
- :class:`AggregateMetrics` -- statistics across sealed cycles
"""

from remedy_loop.measurement.process_metrics import (
    AggregateMetrics,
    AverageTiming,
    CategoryMetrics,
    CycleProgress,
    CycleQuality,
    LearningMetrics,
    LearningTotals,
    ProcessMetrics,
    ProcessMetricsCollector,
    QualityMetrics,
    QualityRates,
    TimingMetrics,
)

__all__ = [
    "AggregateMetrics",
    "AverageTiming",
    "CategoryMetrics",
    "CycleProgress",
    "CycleQuality",
    "LearningMetrics",
    "LearningTotals",
    "ProcessMetrics",
    "ProcessMetricsCollector",
    "QualityMetrics",
    "QualityRates",
    "TimingMetrics",
]
