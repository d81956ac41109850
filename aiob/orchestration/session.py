"""
AIOB Session - the state one orchestration run owns, and its AICF projection.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from aiob.aicf.models import (
    AIAction,
    ConversationFlow,
    Decision,
    MemoryRecord,
    TechnicalWork,
    UserIntent,
    WorkingState,
)
from aiob.errors import AiobError
from aiob.planning.analyzer import ExecutionPlan, Step, Task


class Phase(Enum):
    """Phase of the orchestration state machine."""

    PLANNING = "planning"
    EXECUTING = "executing"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.FAILED, Phase.CANCELLED)


@dataclass(frozen=True)
class RunState:
    """A state of the loop: the phase plus the step it concerns."""

    phase: Phase
    step_index: Optional[int] = None
    agent_id: Optional[str] = None
    cause: Optional[AiobError] = None

    def __str__(self) -> str:
        if self.step_index is None:
            return self.phase.value
        return f"{self.phase.value}({self.step_index})"


@dataclass(frozen=True)
class StepResult:
    """Output of one executed step. Immutable once created."""

    step_index: int
    agent_id: str
    output_text: str
    token_count: int
    timestamp: str

    def __post_init__(self):
        if self.token_count < 0:
            raise ValueError(f"token_count must be >= 0, got {self.token_count}")


@dataclass
class SessionState:
    """
    Everything one orchestration run knows.

    ``results`` only ever grows. ``final_result`` holds the synthesis
    produced while finalizing; its ``step_index`` is ``len(plan.steps)``.
    ``prior`` is the record of an earlier run this one continues from.
    """

    session_id: str
    task: Task
    plan: ExecutionPlan
    created_at: datetime
    results: List[StepResult] = field(default_factory=list)
    final_result: Optional[StepResult] = None
    state: RunState = field(default_factory=lambda: RunState(Phase.PLANNING))
    prior: Optional[MemoryRecord] = None

    def append(self, result: StepResult) -> None:
        expected = len(self.results)
        if result.step_index != expected:
            raise ValueError(f"Expected result for step {expected}, got {result.step_index}")
        self.results.append(result)

    def step_for(self, result: StepResult) -> Optional[Step]:
        if result.step_index < len(self.plan.steps):
            return self.plan.steps[result.step_index]
        return None

    @property
    def total_tokens(self) -> int:
        total = sum(r.token_count for r in self.results)
        if self.final_result:
            total += self.final_result.token_count
        return total

    @property
    def collaborators(self) -> List[str]:
        """Agent ids in order of first contribution."""
        return list(dict.fromkeys(r.agent_id for r in self.results))


def summarize(text: str, token_count: int, max_chars: Optional[int]) -> str:
    """First ``max_chars`` characters of ``text`` plus its token count."""
    if max_chars is not None and len(text) > max_chars:
        text = text[:max_chars] + "..."
    return f"{text} [{token_count} tokens]"


def _dominant_role(user_turns: int, assistant_turns: int) -> str:
    if user_turns > assistant_turns:
        return "user"
    if assistant_turns > user_turns:
        return "assistant"
    return "balanced"


def project(
    session: SessionState,
    results: Optional[Sequence[StepResult]] = None,
    summary_chars: Optional[int] = 200,
    timestamp: Optional[str] = None,
) -> MemoryRecord:
    """
    Project a session onto a MemoryRecord.

    Entries of ``session.prior`` come first, so a continued session carries
    the history of the runs before it.

    Args:
        session: The session to project.
        results: The results to include. Defaults to every step result plus
            the synthesis, if any.
        summary_chars: Characters of each output kept in ``aiActions``;
            None keeps the whole output.
        timestamp: Record timestamp. Defaults to the session creation time.
    """
    if results is None:
        results = list(session.results)
        if session.final_result is not None:
            results.append(session.final_result)

    created = session.created_at.isoformat()
    ai_actions = []
    technical_work = []
    decisions = []
    for result in results:
        step = session.step_for(result)
        kind = step.kind if step else "synthesis"
        work = step.description if step else "Synthesize the final result"
        ai_actions.append(
            AIAction(
                timestamp=result.timestamp,
                type=result.agent_id,
                details=summarize(result.output_text, result.token_count, summary_chars),
            )
        )
        technical_work.append(TechnicalWork(timestamp=result.timestamp, type=kind, work=work))
        decisions.append(
            Decision(
                timestamp=result.timestamp,
                decision=f"Used {result.agent_id} for {kind}",
                impact="medium",
            )
        )

    user_intents = [UserIntent(timestamp=created, intent=session.task.description, confidence="high")]
    sequence = ["user"] + [r.agent_id for r in results]

    prior = session.prior
    if prior is not None:
        user_intents = list(prior.user_intents) + user_intents
        ai_actions = list(prior.ai_actions) + ai_actions
        technical_work = list(prior.technical_work) + technical_work
        decisions = list(prior.decisions) + decisions
        sequence = list(prior.flow.sequence) + sequence

    user_turns = sequence.count("user")
    flow = ConversationFlow(
        turns=len(sequence),
        dominant_role=_dominant_role(user_turns, len(sequence) - user_turns),
        sequence=sequence,
    )

    return MemoryRecord(
        timestamp=timestamp or created,
        conversation_id=session.session_id,
        user_intents=user_intents,
        ai_actions=ai_actions,
        technical_work=technical_work,
        decisions=decisions,
        flow=flow,
        working_state=_working_state(session, len(results)),
    )


def _working_state(session: SessionState, completed: int) -> WorkingState:
    state = session.state
    blockers = []
    if state.phase is Phase.FAILED:
        blockers.append(str(state.cause) if state.cause else "agent call failed")
        next_action = f"retry step {state.step_index}"
    elif state.phase is Phase.CANCELLED:
        blockers.append("cancelled")
        next_action = f"resume at step {state.step_index}"
    elif state.phase is Phase.COMPLETE:
        next_action = "done"
    elif completed < len(session.plan.steps):
        next_action = session.plan.steps[completed].description
    else:
        next_action = "synthesize final result"

    return WorkingState(
        current_task=session.task.description,
        blockers=[b for b in blockers if b],
        next_action=next_action,
    )
