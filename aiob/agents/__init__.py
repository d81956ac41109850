"""
AIOB agents module.

This module provides the capability registry and agent selection.
"""

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.agents.selector import AgentMatch, AgentSelector

__all__ = ["AgentMatch", "AgentProfile", "AgentSelector", "CapabilityRegistry"]
