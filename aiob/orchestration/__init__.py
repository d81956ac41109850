"""
AIOB orchestration module.

This module provides the session state and the orchestration loop that
hands compressed context from one agent to the next.
"""

from aiob.orchestration.budget import BudgetStatus, BudgetTracker
from aiob.orchestration.loop import OrchestrationEvent, OrchestrationOutcome, Orchestrator
from aiob.orchestration.session import Phase, RunState, SessionState, StepResult

__all__ = [
    "BudgetStatus",
    "BudgetTracker",
    "OrchestrationEvent",
    "OrchestrationOutcome",
    "Orchestrator",
    "Phase",
    "RunState",
    "SessionState",
    "StepResult",
]
