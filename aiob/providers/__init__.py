"""
AIOB providers module.

This module provides the agent capability interface and adapters for
various LLM providers.
"""

from aiob.providers.base import (
    AgentBackend,
    AgentReply,
    MockAgent,
    Provider,
    ProviderAgent,
    ProviderFactory,
    ProviderResponse,
)

__all__ = [
    "AgentBackend",
    "AgentReply",
    "MockAgent",
    "Provider",
    "ProviderAgent",
    "ProviderFactory",
    "ProviderResponse",
]
