"""
AIOB AICF module.

This module provides the AICF memory record types, the escape-safe text
codec, and the session record store.
"""

from aiob.aicf.codec import ContextCodec
from aiob.aicf.models import (
    AIAction,
    ConversationFlow,
    Decision,
    MemoryRecord,
    TechnicalWork,
    UserIntent,
    WorkingState,
)
from aiob.aicf.store import SessionStore

__all__ = [
    "AIAction",
    "ContextCodec",
    "ConversationFlow",
    "Decision",
    "MemoryRecord",
    "SessionStore",
    "TechnicalWork",
    "UserIntent",
    "WorkingState",
]
