"""Tests for token budget tracking."""

import logging

import pytest

from aiob.orchestration.budget import BudgetStatus, BudgetTracker
from aiob.validation.config import ConfigError


class TestBudgetTracker:
    """Tests for BudgetTracker."""

    @pytest.fixture
    def tracker(self):
        return BudgetTracker({"anthropic": 1000, "openai": None})

    def test_unlimited_provider(self, tracker):
        """Test that providers without a budget are never blocked."""
        tracker.track("openai", 10_000_000)
        assert tracker.check("openai")
        assert tracker.check("unknown")

    def test_exhausted(self, tracker, caplog):
        """Test that a spent budget blocks further calls."""
        tracker.track("anthropic", 1000)
        with caplog.at_level(logging.WARNING, logger="aiob.orchestration.budget"):
            assert not tracker.check("anthropic")
        assert "Budget exhausted for anthropic" in caplog.text

    def test_running_low_warns(self, tracker, caplog):
        """Test the warning in the last tenth of the budget."""
        tracker.track("anthropic", 950)
        with caplog.at_level(logging.WARNING, logger="aiob.orchestration.budget"):
            assert tracker.check("anthropic")
        assert "running low" in caplog.text

    def test_estimate_larger_than_remaining(self, tracker):
        tracker.track("anthropic", 600)
        assert tracker.check("anthropic", estimated_tokens=300)
        assert not tracker.check("anthropic", estimated_tokens=500)

    def test_track_accumulates(self, tracker):
        tracker.track("anthropic", 100)
        tracker.track("anthropic", 50)
        assert tracker.spent("anthropic") == 150
        assert tracker.spent("openrouter") == 0

    def test_negative_tokens_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.track("anthropic", -1)

    def test_status(self, tracker):
        """Test status for budgeted, unlimited and spent-only providers."""
        tracker.track("anthropic", 250)
        tracker.track("openrouter", 7)

        status = tracker.status()

        assert list(status) == ["anthropic", "openai", "openrouter"]
        assert status["anthropic"].remaining == 750
        assert status["anthropic"].percent_used == 25.0
        assert status["openai"].remaining is None
        assert status["openrouter"] == BudgetStatus("openrouter", None, 7)

    def test_zero_budget(self):
        status = BudgetStatus("anthropic", budget=0, spent=0)
        assert status.percent_used == 100.0
        assert not BudgetTracker({"anthropic": 0}).check("anthropic")


class TestBudgetLedger:
    """Tests for persisting spending."""

    def test_save_and_load(self, tmp_path):
        """Test that spending survives a save and load."""
        path = tmp_path / ".aicf" / "budget.yaml"
        tracker = BudgetTracker({"anthropic": 1000})
        tracker.track("anthropic", 120)
        tracker.save(path)

        loaded = BudgetTracker.load(path, {"anthropic": 500})

        assert loaded.spent("anthropic") == 120
        assert loaded.budgets == {"anthropic": 500}

    def test_missing_ledger(self, tmp_path):
        tracker = BudgetTracker.load(tmp_path / "none.yaml", {"openai": 10})
        assert tracker.spent("openai") == 0

    def test_invalid_ledger(self, tmp_path):
        """Test that a corrupt ledger raises ConfigError."""
        path = tmp_path / "budget.yaml"
        path.write_text("spent:\n  anthropic: lots\n")
        with pytest.raises(ConfigError):
            BudgetTracker.load(path, {})

    def test_unparseable_ledger(self, tmp_path):
        path = tmp_path / "budget.yaml"
        path.write_text("spent: [unclosed\n")
        with pytest.raises(ConfigError):
            BudgetTracker.load(path, {})
