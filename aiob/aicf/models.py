"""
AICF memory record types.

A MemoryRecord is the compressed, textual projection of a conversation or
orchestration session. All types here are frozen; sequences are stored as
tuples so that a decoded record compares equal to a hand-built one.
"""

from dataclasses import dataclass, field
from typing import Tuple

AICF_VERSION = "3.0.0-alpha"

LEVELS = ("high", "medium", "low")
DOMINANT_ROLES = ("user", "assistant", "balanced")


@dataclass(frozen=True)
class UserIntent:
    """Something the user asked for."""

    timestamp: str
    intent: str
    confidence: str = "high"


@dataclass(frozen=True)
class AIAction:
    """Something an agent did. ``type`` holds the agent id for orchestration runs."""

    timestamp: str
    type: str
    details: str


@dataclass(frozen=True)
class TechnicalWork:
    """A unit of technical work performed during the conversation."""

    timestamp: str
    type: str
    work: str


@dataclass(frozen=True)
class Decision:
    """A decision taken during the conversation."""

    timestamp: str
    decision: str
    impact: str = "medium"


@dataclass(frozen=True)
class ConversationFlow:
    """Turn count, dominant role and the ordered sequence of turn labels."""

    turns: int = 0
    dominant_role: str = "balanced"
    sequence: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "sequence", tuple(self.sequence))


@dataclass(frozen=True)
class WorkingState:
    """Where the conversation left off."""

    current_task: str = ""
    blockers: Tuple[str, ...] = ()
    next_action: str = ""

    def __post_init__(self):
        object.__setattr__(self, "blockers", tuple(self.blockers))


@dataclass(frozen=True)
class MemoryRecord:
    """
    One AICF record.

    Example:
        >>> record = MemoryRecord(timestamp="2025-01-01T00:00:00+00:00",
        ...                       conversation_id="abc123")
        >>> record.user_intents
        ()
    """

    timestamp: str
    conversation_id: str
    user_intents: Tuple[UserIntent, ...] = ()
    ai_actions: Tuple[AIAction, ...] = ()
    technical_work: Tuple[TechnicalWork, ...] = ()
    decisions: Tuple[Decision, ...] = ()
    flow: ConversationFlow = field(default_factory=ConversationFlow)
    working_state: WorkingState = field(default_factory=WorkingState)
    version: str = AICF_VERSION

    def __post_init__(self):
        for name in ("user_intents", "ai_actions", "technical_work", "decisions"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
