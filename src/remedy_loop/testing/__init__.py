"""Public testing utilities for the remedy loop.

Provides scripted executors and replay fixtures for writing self-contained
examples and tests.
"""

from remedy_loop.testing.fakes import (
    ScriptedExecutor,
    ScriptedFixture,
    make_diagnosis,
    scripted_scenario,
)

__all__ = ["ScriptedExecutor", "ScriptedFixture", "make_diagnosis", "scripted_scenario"]
