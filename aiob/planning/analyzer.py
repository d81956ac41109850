"""
AIOB Task Analyzer - turn a free-text task into an ordered execution plan.

Classification is a static keyword lookup: the first intent whose keywords
appear in the task wins, and ``build`` is used when nothing matches.
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from aiob.errors import InvalidTaskError

if TYPE_CHECKING:
    from aiob.agents.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

BUILD = "build"
DEBUG = "debug"
ANALYZE = "analyze"
CLARIFY = "clarify"

DEFAULT_INTENT = BUILD

# Checked in order; the first intent with a matching word wins.
INTENT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    (
        BUILD,
        (
            "build", "builds", "building", "built",
            "create", "creates", "creating", "created",
            "implement", "implements", "implementing", "implemented",
            "add", "adds", "adding", "added",
        ),
    ),
    (
        DEBUG,
        (
            "fix", "fixes", "fixing", "fixed",
            "debug", "debugs", "debugging", "debugged",
            "error", "errors", "errored",
            "bug", "bugs", "buggy",
        ),
    ),
    (
        ANALYZE,
        (
            "analyze", "analyzes", "analyzing", "analyzed",
            "analyse", "analyses", "analysing", "analysed",
            "review", "reviews", "reviewing", "reviewed",
            "evaluate", "evaluates", "evaluating", "evaluated",
        ),
    ),
)

_WORD_RE = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class StepTemplate:
    kind: str
    description: str
    capabilities: Tuple[str, ...]


PLAN_TEMPLATES: Dict[str, Tuple[StepTemplate, ...]] = {
    BUILD: (
        StepTemplate(
            "architecture",
            "Design the architecture and plan the work for: {task}",
            ("architecture", "planning"),
        ),
        StepTemplate(
            "implementation",
            "Implement the solution for: {task}",
            ("coding", "implementation"),
        ),
        StepTemplate(
            "review",
            "Review and refine the implementation of: {task}",
            ("reasoning", "analysis"),
        ),
    ),
    DEBUG: (
        StepTemplate(
            "diagnosis",
            "Diagnose the root cause of: {task}",
            ("debugging", "analysis"),
        ),
        StepTemplate(
            "fix",
            "Implement and verify a fix for: {task}",
            ("coding", "debugging"),
        ),
    ),
    ANALYZE: (
        StepTemplate(
            "analysis",
            "Analyze and report findings on: {task}",
            ("reasoning", "analysis"),
        ),
    ),
    CLARIFY: (
        StepTemplate(
            "clarification",
            "The task description is empty. Ask the user what they want to accomplish.",
            ("reasoning",),
        ),
    ),
}


@dataclass(frozen=True)
class Task:
    """The user's request."""

    description: str


@dataclass(frozen=True)
class Step:
    """One step of an execution plan."""

    index: int
    description: str
    required_capabilities: Tuple[str, ...]
    kind: str = "general"

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Step index must be >= 0, got {self.index}")
        object.__setattr__(self, "required_capabilities", tuple(self.required_capabilities))


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered steps; indices are contiguous from 0."""

    steps: Tuple[Step, ...]
    intent: str = DEFAULT_INTENT

    def __post_init__(self):
        steps = tuple(self.steps)
        if not steps:
            raise ValueError("An execution plan needs at least one step")
        for expected, step in enumerate(steps):
            if step.index != expected:
                raise ValueError(f"Step indices must be contiguous: expected {expected}, got {step.index}")
        object.__setattr__(self, "steps", steps)

    def __len__(self) -> int:
        return len(self.steps)


def classify(task_text: str) -> str:
    """Return the intent for ``task_text``; ``build`` when nothing matches."""
    words = set(_WORD_RE.findall(task_text.lower()))
    for intent, keywords in INTENT_KEYWORDS:
        if words.intersection(keywords):
            return intent
    return DEFAULT_INTENT


class TaskAnalyzer:
    """
    Classify a task and expand it into an ExecutionPlan.

    Example:
        >>> plan = TaskAnalyzer().analyze("Build a login page")
        >>> [s.kind for s in plan.steps]
        ['architecture', 'implementation', 'review']
    """

    def __init__(self, registry: Optional["CapabilityRegistry"] = None, reject_empty: bool = False):
        """
        Initialize the TaskAnalyzer.

        Args:
            registry: Used to warn about steps no registered agent can cover.
            reject_empty: Raise InvalidTaskError on empty input instead of
                planning a clarification step.
        """
        self.registry = registry
        self.reject_empty = reject_empty

    def analyze(self, task_text: str) -> ExecutionPlan:
        """
        Build the execution plan for a task.

        Raises:
            InvalidTaskError: If the task is empty and ``reject_empty`` is set.
        """
        task_text = (task_text or "").strip()

        if not task_text:
            if self.reject_empty:
                raise InvalidTaskError("Task description is empty")
            intent = CLARIFY
        else:
            intent = classify(task_text)

        plan = self._expand(intent, task_text)
        logger.info("Planned %d step(s) for %s task", len(plan), intent)
        self._warn_uncovered(plan.steps)
        return plan

    def _expand(self, intent: str, task_text: str) -> ExecutionPlan:
        steps = [
            Step(
                index=i,
                description=template.description.format(task=task_text),
                required_capabilities=template.capabilities,
                kind=template.kind,
            )
            for i, template in enumerate(PLAN_TEMPLATES[intent])
        ]
        return ExecutionPlan(steps=tuple(steps), intent=intent)

    def _warn_uncovered(self, steps: Sequence[Step]) -> None:
        if self.registry is None:
            return
        available = self.registry.capabilities()
        missing: List[str] = []
        for step in steps:
            missing.extend(c for c in step.required_capabilities if c not in available)
        for capability in dict.fromkeys(missing):
            logger.warning("No registered agent offers capability %r", capability)
