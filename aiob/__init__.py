"""
AIOB - AI Orchestration Board.

Several independent AI agents collaborate on one task by handing each
other a compressed AICF memory record instead of raw transcripts.

Pipeline:
- TaskAnalyzer turns the task into an ordered execution plan
- AgentSelector picks the best agent for each step by capability
- ContextCodec compresses the work so far into an AICF record
- Orchestrator feeds that record to the next agent and persists the session
"""

__version__ = "0.1.0"
__license__ = "MIT"

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.agents.selector import AgentSelector
from aiob.aicf.codec import ContextCodec
from aiob.aicf.models import MemoryRecord
from aiob.aicf.store import SessionStore
from aiob.orchestration.loop import OrchestrationOutcome, Orchestrator
from aiob.planning.analyzer import ExecutionPlan, Step, TaskAnalyzer

__all__ = [
    "AgentProfile",
    "AgentSelector",
    "CapabilityRegistry",
    "ContextCodec",
    "ExecutionPlan",
    "MemoryRecord",
    "OrchestrationOutcome",
    "Orchestrator",
    "SessionStore",
    "Step",
    "TaskAnalyzer",
    "__version__",
]
