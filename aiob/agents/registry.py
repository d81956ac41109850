"""
AIOB Capability Registry - the static table of agents and their skills.

The registry is built once and never mutated. It is passed explicitly to
the components that need it instead of living in a module-level global.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence

# Roster used when the configuration declares no agents.
DEFAULT_AGENT_CAPABILITIES: Mapping[str, Sequence[str]] = MappingProxyType(
    {
        "claude": ("reasoning", "analysis", "writing", "architecture", "planning"),
        "gpt": ("coding", "optimization", "debugging", "explanation", "implementation"),
        "openrouter": (
            "reasoning",
            "coding",
            "analysis",
            "writing",
            "architecture",
            "implementation",
        ),
        "copilot": ("code_completion", "implementation", "patterns", "testing"),
        "cursor": ("refactoring", "editing", "file_operations", "optimization"),
        "warp": ("terminal", "commands", "system_ops", "debugging"),
    }
)

DEFAULT_AGENT_PROVIDERS: Mapping[str, str] = MappingProxyType(
    {
        "claude": "anthropic",
        "gpt": "openai",
        "openrouter": "openrouter",
    }
)


@dataclass(frozen=True)
class AgentProfile:
    """An agent and the capability tags it declares."""

    id: str
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    provider: Optional[str] = None
    model: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Agent id must not be empty")
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))


class CapabilityRegistry:
    """
    Immutable lookup table of AgentProfiles keyed by id.

    Example:
        >>> registry = CapabilityRegistry([AgentProfile("a", {"coding"})])
        >>> registry.get("a").capabilities
        frozenset({'coding'})
    """

    def __init__(self, profiles: Iterable[AgentProfile] = ()):
        agents: Dict[str, AgentProfile] = {}
        for profile in profiles:
            if profile.id in agents:
                raise ValueError(f"Duplicate agent id: {profile.id}")
            agents[profile.id] = profile
        self._agents = MappingProxyType(dict(sorted(agents.items())))

    @classmethod
    def default(cls) -> "CapabilityRegistry":
        """Build the registry from the built-in roster."""
        return cls(
            AgentProfile(
                id=agent_id,
                capabilities=frozenset(capabilities),
                provider=DEFAULT_AGENT_PROVIDERS.get(agent_id),
            )
            for agent_id, capabilities in DEFAULT_AGENT_CAPABILITIES.items()
        )

    def get(self, agent_id: str) -> Optional[AgentProfile]:
        """Return the profile for ``agent_id``, or None."""
        return self._agents.get(agent_id)

    def agents(self) -> List[AgentProfile]:
        """All profiles, ordered by id."""
        return list(self._agents.values())

    def ids(self) -> List[str]:
        return list(self._agents.keys())

    def capabilities(self) -> FrozenSet[str]:
        """Union of every capability any agent declares."""
        return frozenset(cap for profile in self._agents.values() for cap in profile.capabilities)

    def with_capability(self, capability: str) -> List[AgentProfile]:
        return [p for p in self._agents.values() if capability in p.capabilities]

    def restrict(self, agent_ids: Iterable[str]) -> "CapabilityRegistry":
        """Return a new registry holding only the given agents."""
        wanted = set(agent_ids)
        return CapabilityRegistry(p for p in self._agents.values() if p.id in wanted)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[AgentProfile]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __bool__(self) -> bool:
        return bool(self._agents)
