"""
AIOB Agent Selector - capability scoring with deterministic tie-breaking.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.errors import NoEligibleAgentError
from aiob.planning.analyzer import Step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentMatch:
    """How well one agent covers a step's required capabilities."""

    agent: AgentProfile
    score: float
    matched: FrozenSet[str]


class AgentSelector:
    """
    Pick the best agent for a plan step.

    score = |required ∩ agent capabilities| / |required|

    Ties go to an agent other than the one used for the previous step,
    then to the lexicographically smallest id. Selection is a pure function
    of (step, registry, previous agent id).
    """

    def score(self, step: Step, agent: AgentProfile) -> AgentMatch:
        required = frozenset(step.required_capabilities)
        matched = required & agent.capabilities
        score = len(matched) / len(required) if required else 0.0
        return AgentMatch(agent=agent, score=score, matched=matched)

    def rank(
        self,
        step: Step,
        registry: CapabilityRegistry,
        previous_agent_id: Optional[str] = None,
    ) -> List[AgentMatch]:
        """Score every agent and return them in selection order."""
        matches = [self.score(step, agent) for agent in registry]
        matches.sort(key=lambda m: (-m.score, m.agent.id == previous_agent_id, m.agent.id))
        return matches

    def select(
        self,
        step: Step,
        registry: CapabilityRegistry,
        previous_agent_id: Optional[str] = None,
    ) -> AgentProfile:
        """
        Select the agent for ``step``.

        Args:
            step: The plan step to staff.
            registry: Agents to choose from.
            previous_agent_id: Agent used for the immediately preceding step.

        Returns:
            The best-scoring AgentProfile, even if its overlap is partial.

        Raises:
            NoEligibleAgentError: If the registry is empty.
        """
        if not registry:
            raise NoEligibleAgentError("No agents registered")

        best = self.rank(step, registry, previous_agent_id)[0]
        logger.info(
            "Selected %s (score: %.2f) for step %d capabilities: %s",
            best.agent.id,
            best.score,
            step.index,
            ", ".join(step.required_capabilities),
        )
        return best.agent
