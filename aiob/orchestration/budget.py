"""
AIOB Budget - per-provider token budgets.

Spending is counted in tokens, taken from the token count of every agent
reply. Totals persist in a small YAML ledger so they accumulate across runs.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from aiob.validation.config import ConfigError

logger = logging.getLogger(__name__)

LOW_BUDGET_FRACTION = 0.1


@dataclass(frozen=True)
class BudgetStatus:
    """Budget and spending of one provider. ``budget`` None means unlimited."""

    provider: str
    budget: Optional[int]
    spent: int

    @property
    def remaining(self) -> Optional[int]:
        if self.budget is None:
            return None
        return self.budget - self.spent

    @property
    def percent_used(self) -> Optional[float]:
        if self.budget is None:
            return None
        if self.budget == 0:
            return 100.0
        return self.spent / self.budget * 100


class BudgetTracker:
    """
    Tracks tokens spent per provider against configured budgets.

    Example:
        >>> tracker = BudgetTracker({"anthropic": 1000})
        >>> tracker.track("anthropic", 950)
        >>> tracker.check("anthropic")
        True
        >>> tracker.track("anthropic", 50)
        >>> tracker.check("anthropic")
        False
    """

    def __init__(self, budgets: Mapping[str, Optional[int]], spent: Optional[Mapping[str, int]] = None):
        """
        Initialize the BudgetTracker.

        Args:
            budgets: Provider name -> token budget; None for no limit.
            spent: Tokens already spent per provider.
        """
        self.budgets = dict(budgets)
        self._spent: Dict[str, int] = dict(spent or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Path, budgets: Mapping[str, Optional[int]]) -> "BudgetTracker":
        """Create a tracker with the spending recorded in ``path``, if it exists."""
        if not path.exists():
            return cls(budgets)

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load budget ledger from {path}: {e}")

        spent = (data.get("spent") or {}) if isinstance(data, dict) else None
        if not isinstance(spent, dict) or not all(isinstance(v, int) and v >= 0 for v in spent.values()):
            raise ConfigError(f"Invalid budget ledger {path}: 'spent' must map providers to token counts")
        return cls(budgets, spent)

    def save(self, path: Path) -> None:
        """Write the spending totals to ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            data = {"spent": dict(sorted(self._spent.items()))}
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def spent(self, provider: str) -> int:
        with self._lock:
            return self._spent.get(provider, 0)

    def check(self, provider: str, estimated_tokens: int = 0) -> bool:
        """
        Whether ``provider`` may be called.

        Logs a warning when the budget is exhausted, too small for
        ``estimated_tokens``, or down to its last tenth.
        """
        budget = self.budgets.get(provider)
        if budget is None:
            return True

        spent = self.spent(provider)
        remaining = budget - spent
        if remaining <= 0:
            logger.warning("Budget exhausted for %s: %d/%d tokens", provider, spent, budget)
            return False
        if remaining < estimated_tokens:
            logger.warning("Low budget for %s: %d tokens remaining", provider, remaining)
            return False
        if remaining < budget * LOW_BUDGET_FRACTION:
            logger.warning("Budget running low for %s: %d tokens remaining", provider, remaining)
        return True

    def track(self, provider: str, tokens: int) -> None:
        """Record ``tokens`` spent on ``provider``."""
        if tokens < 0:
            raise ValueError(f"tokens must be >= 0, got {tokens}")
        with self._lock:
            self._spent[provider] = self._spent.get(provider, 0) + tokens
            total = self._spent[provider]

        budget = self.budgets.get(provider)
        if budget is None:
            logger.info("%s used %d tokens (%d total)", provider, tokens, total)
        else:
            logger.info("%s used %d tokens (%d remaining)", provider, tokens, budget - total)

    def status(self) -> Dict[str, BudgetStatus]:
        """Status of every provider with a budget or recorded spending."""
        with self._lock:
            spent = dict(self._spent)
        providers = sorted(set(self.budgets) | set(spent))
        return {
            name: BudgetStatus(provider=name, budget=self.budgets.get(name), spent=spent.get(name, 0))
            for name in providers
        }
