"""Verification layer: replay scenarios with and without learnings."""

from remedy_loop.verification.replay import (
    FixExecutor,
    Improvement,
    ReplayAttempt,
    ReplayComparison,
    ReplayResult,
    ReplayScenario,
    ReplayVerifier,
    VerificationSummary,
    classify_outcome,
    compute_improvement,
)

__all__ = [
    "FixExecutor",
    "Improvement",
    "ReplayAttempt",
    "ReplayComparison",
    "ReplayResult",
    "ReplayScenario",
    "ReplayVerifier",
    "VerificationSummary",
    "classify_outcome",
    "compute_improvement",
]
