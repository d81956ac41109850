"""Tests for the capability registry and agent selection."""

import pytest

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.agents.selector import AgentSelector
from aiob.errors import NoEligibleAgentError
from aiob.planning.analyzer import Step


def step(*capabilities: str, index: int = 0) -> Step:
    return Step(index=index, description="do it", required_capabilities=capabilities)


class TestCapabilityRegistry:
    """Tests for CapabilityRegistry."""

    def test_default_roster(self):
        """Test the built-in roster."""
        registry = CapabilityRegistry.default()

        assert registry.ids() == ["claude", "copilot", "cursor", "gpt", "openrouter", "warp"]
        assert "architecture" in registry.get("claude").capabilities
        assert registry.get("claude").provider == "anthropic"
        assert registry.get("cursor").provider is None

    def test_duplicate_ids_rejected(self):
        """Test that two profiles cannot share an id."""
        with pytest.raises(ValueError):
            CapabilityRegistry([AgentProfile("a"), AgentProfile("a")])

    def test_profile_capabilities_frozen(self):
        """Test that capabilities are stored as a frozenset."""
        profile = AgentProfile("a", {"coding"})
        assert profile.capabilities == frozenset({"coding"})
        with pytest.raises(AttributeError):
            profile.id = "b"

    def test_lookups(self):
        """Test get, membership, and capability queries."""
        registry = CapabilityRegistry(
            [AgentProfile("b", {"coding"}), AgentProfile("a", {"coding", "testing"})]
        )

        assert "a" in registry
        assert registry.get("missing") is None
        assert [p.id for p in registry] == ["a", "b"]
        assert registry.capabilities() == frozenset({"coding", "testing"})
        assert [p.id for p in registry.with_capability("testing")] == ["a"]

    def test_restrict(self):
        """Test building a sub-registry."""
        registry = CapabilityRegistry.default().restrict(["gpt", "claude", "unknown"])
        assert registry.ids() == ["claude", "gpt"]

    def test_empty_registry_is_falsy(self):
        assert not CapabilityRegistry()
        assert len(CapabilityRegistry()) == 0


class TestAgentSelector:
    """Tests for AgentSelector."""

    @pytest.fixture
    def selector(self):
        return AgentSelector()

    def test_best_score_wins(self, selector):
        """Test that full coverage beats partial coverage."""
        registry = CapabilityRegistry(
            [AgentProfile("A", {"coding"}), AgentProfile("B", {"coding", "debugging"})]
        )
        assert selector.select(step("coding", "debugging"), registry).id == "B"

    def test_score_values(self, selector):
        """Test the overlap ratio."""
        match = selector.score(step("coding", "debugging"), AgentProfile("A", {"coding", "writing"}))
        assert match.score == 0.5
        assert match.matched == frozenset({"coding"})

    def test_partial_overlap_still_selected(self, selector):
        """Test graceful degradation when nobody covers the step."""
        registry = CapabilityRegistry([AgentProfile("only", {"writing"})])
        assert selector.select(step("coding"), registry).id == "only"

    def test_tie_prefers_different_agent(self, selector):
        """Test that ties avoid the previous step's agent."""
        registry = CapabilityRegistry(
            [AgentProfile("alpha", {"coding"}), AgentProfile("beta", {"coding"})]
        )

        assert selector.select(step("coding"), registry).id == "alpha"
        assert selector.select(step("coding"), registry, previous_agent_id="alpha").id == "beta"
        assert selector.select(step("coding"), registry, previous_agent_id="beta").id == "alpha"

    def test_higher_score_beats_diversity(self, selector):
        """Test that the previous agent still wins when it scores higher."""
        registry = CapabilityRegistry(
            [AgentProfile("alpha", {"coding", "testing"}), AgentProfile("beta", {"coding"})]
        )
        chosen = selector.select(step("coding", "testing"), registry, previous_agent_id="alpha")
        assert chosen.id == "alpha"

    def test_deterministic(self, selector):
        """Test that identical inputs give identical selections."""
        registry = CapabilityRegistry.default()
        the_step = step("reasoning", "analysis")

        picks = {selector.select(the_step, registry, "claude").id for _ in range(10)}
        assert len(picks) == 1

    def test_default_roster_picks(self, selector):
        """Test selections against the built-in roster."""
        registry = CapabilityRegistry.default()

        assert selector.select(step("architecture", "planning"), registry).id == "claude"
        assert selector.select(step("coding", "implementation"), registry, "claude").id == "gpt"
        assert selector.select(step("reasoning", "analysis"), registry, "gpt").id == "claude"

    def test_empty_requirements(self, selector):
        """Test that a step without requirements falls back to id order."""
        registry = CapabilityRegistry([AgentProfile("z", {"a"}), AgentProfile("y", {"b"})])
        assert selector.select(step(), registry).id == "y"

    def test_empty_registry(self, selector):
        """Test that an empty registry raises NoEligibleAgentError."""
        with pytest.raises(NoEligibleAgentError):
            selector.select(step("coding"), CapabilityRegistry())

    def test_rank_order(self, selector):
        """Test that rank lists every agent in selection order."""
        registry = CapabilityRegistry(
            [AgentProfile("a", {"x"}), AgentProfile("b", {"x", "y"}), AgentProfile("c", set())]
        )
        ranked = selector.rank(step("x", "y"), registry)
        assert [m.agent.id for m in ranked] == ["b", "a", "c"]
        assert [m.score for m in ranked] == [1.0, 0.5, 0.0]
