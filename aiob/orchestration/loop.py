"""
AIOB Orchestrator - drives an execution plan across collaborating agents.

State machine:

    PLANNING -> EXECUTING(0) -> ... -> EXECUTING(n-1) -> FINALIZING -> COMPLETE
                     |                                       |
                     +--------> FAILED(i) / CANCELLED(i) <---+

Each step receives the AICF-encoded projection of every earlier result as
its context. The loop never retries a failed agent call; the run ends in
FAILED and whatever completed is still persisted.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping, Optional, Union

from aiob.agents.registry import AgentProfile, CapabilityRegistry
from aiob.agents.selector import AgentSelector
from aiob.aicf.codec import ContextCodec
from aiob.aicf.models import MemoryRecord
from aiob.aicf.store import SessionStore, validate_session_id
from aiob.errors import AgentError, NoEligibleAgentError
from aiob.orchestration.budget import BudgetTracker
from aiob.orchestration.session import (
    Phase,
    RunState,
    SessionState,
    StepResult,
    project,
)
from aiob.planning.analyzer import Step, Task, TaskAnalyzer
from aiob.providers.base import AgentBackend, AgentReply

logger = logging.getLogger(__name__)

SYNTHESIS_PROMPT = (
    "Task: {task}\n\n"
    "Multiple agents have collaborated on this task. Their contributions are in the "
    "shared context. Synthesize them into one coherent, actionable final result."
)


@dataclass(frozen=True)
class OrchestrationEvent:
    """Progress notification: a state transition, with the result that caused it if any."""

    session: SessionState
    state: RunState
    result: Optional[StepResult] = None


@dataclass
class OrchestrationOutcome:
    """Final state of a run plus where it was persisted."""

    session: SessionState
    record_path: Optional[Path] = None

    @property
    def state(self) -> RunState:
        return self.session.state

    @property
    def succeeded(self) -> bool:
        return self.session.state.phase is Phase.COMPLETE

    @property
    def final_output(self) -> Optional[str]:
        final = self.session.final_result
        return final.output_text if final else None


class Orchestrator:
    """
    Sequential multi-agent orchestration loop.

    Independent runs may execute concurrently on one Orchestrator; each run
    owns its SessionState and is the only writer of its session file.

    Example:
        >>> orchestrator = Orchestrator(registry, backends, store=SessionStore(tmp))
        >>> outcome = orchestrator.run("Build a login page")
        >>> outcome.state.phase
        <Phase.COMPLETE: 'complete'>
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        backends: Mapping[str, AgentBackend],
        store: Optional[SessionStore] = None,
        analyzer: Optional[TaskAnalyzer] = None,
        selector: Optional[AgentSelector] = None,
        codec: Optional[ContextCodec] = None,
        summary_chars: int = 200,
        timeout_ms: int = 120_000,
        clock: Optional[Callable[[], datetime]] = None,
        budget: Optional[BudgetTracker] = None,
    ):
        """
        Initialize the Orchestrator.

        Args:
            registry: Agents that may be selected.
            backends: Agent id -> backend used to invoke that agent.
            store: Where session records are persisted. None disables persistence.
            analyzer: Task analyzer; one bound to ``registry`` by default.
            selector: Agent selector.
            codec: AICF codec used for compressed contexts.
            summary_chars: Characters of each prior output kept in the context.
            timeout_ms: Timeout passed to every agent call.
            clock: Returns the current time; UTC now by default.
            budget: Token budgets checked before and charged after every
                call to an agent with a provider.
        """
        self.registry = registry
        self.backends = dict(backends)
        self.store = store
        self.analyzer = analyzer or TaskAnalyzer(registry)
        self.selector = selector or AgentSelector()
        self.codec = codec or (store.codec if store else ContextCodec())
        self.summary_chars = summary_chars
        self.timeout_ms = timeout_ms
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.budget = budget

    def run(
        self,
        task: Union[str, Task],
        session_id: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
        on_event: Optional[Callable[[OrchestrationEvent], None]] = None,
        prior: Optional[MemoryRecord] = None,
    ) -> OrchestrationOutcome:
        """
        Run one orchestration to completion, failure, or cancellation.

        Args:
            task: Task text or Task.
            session_id: Session identifier; generated when omitted.
            cancel: Checked before every step; when set the run stops.
            on_event: Receives every state transition.
            prior: Record of an earlier run to continue from. Its entries are
                included in every context handed to the agents.

        Returns:
            OrchestrationOutcome with the final session state.

        Raises:
            NoEligibleAgentError: If the registry is empty.
            InvalidTaskError: If the analyzer rejects the task.
            ValueError: If ``session_id`` is not usable as a file name.
        """
        if not self.registry:
            raise NoEligibleAgentError("No agents available; check your configuration and API keys")

        if isinstance(task, str):
            task = Task(description=task)
        session_id = validate_session_id(session_id) if session_id else uuid.uuid4().hex[:12]

        logger.info("Starting session %s for: %s", session_id, task.description)
        plan = self.analyzer.analyze(task.description)
        session = SessionState(
            session_id=session_id, task=task, plan=plan, created_at=self.clock(), prior=prior
        )
        if prior is not None:
            logger.info(
                "Continuing from %s with %d earlier action(s)", prior.conversation_id, len(prior.ai_actions)
            )
        self._transition(session, RunState(Phase.PLANNING), on_event)

        for step in plan.steps:
            if cancel is not None and cancel.is_set():
                self._transition(session, RunState(Phase.CANCELLED, step.index), on_event)
                return self._finish(session)

            self._transition(session, RunState(Phase.EXECUTING, step.index), on_event)
            if not self._execute_step(session, step, on_event):
                return self._finish(session)

        self._finalize(session, on_event)
        return self._finish(session)

    # ── Steps ─────────────────────────────────────────────────────────────

    def _execute_step(self, session: SessionState, step: Step, on_event) -> bool:
        previous = session.results[-1].agent_id if session.results else None
        agent = self.selector.select(step, self.registry, previous_agent_id=previous)

        context = self.codec.encode(
            project(session, results=session.results[: step.index], summary_chars=self.summary_chars)
        )

        try:
            reply = self._invoke(agent, step.description, context)
        except AgentError as e:
            self._fail(session, step.index, agent, e, on_event)
            return False

        result = StepResult(
            step_index=step.index,
            agent_id=agent.id,
            output_text=reply.text,
            token_count=reply.token_count,
            timestamp=self.clock().isoformat(),
        )
        session.append(result)
        logger.info("%s completed step %d (%d tokens)", agent.id, step.index, reply.token_count)
        self._notify(on_event, session, result)
        return True

    def _finalize(self, session: SessionState, on_event) -> None:
        index = len(session.plan.steps)
        self._transition(session, RunState(Phase.FINALIZING, index), on_event)

        agent = self.registry.get(session.results[-1].agent_id)
        context = self.codec.encode(project(session, summary_chars=None))
        prompt = SYNTHESIS_PROMPT.format(task=session.task.description)

        try:
            reply = self._invoke(agent, prompt, context)
        except AgentError as e:
            self._fail(session, index, agent, e, on_event)
            return

        session.final_result = StepResult(
            step_index=index,
            agent_id=agent.id,
            output_text=reply.text,
            token_count=reply.token_count,
            timestamp=self.clock().isoformat(),
        )
        self._transition(session, RunState(Phase.COMPLETE), on_event, session.final_result)
        logger.info(
            "Session %s complete: %d agent(s), %d tokens",
            session.session_id,
            len(session.collaborators),
            session.total_tokens,
        )

    def _invoke(self, agent: AgentProfile, prompt: str, context: str) -> AgentReply:
        backend = self.backends.get(agent.id)
        if backend is None:
            raise AgentError(f"No backend registered for agent {agent.id}", kind=AgentError.UNAVAILABLE, agent_id=agent.id)

        charged = self.budget is not None and agent.provider is not None
        if charged and not self.budget.check(agent.provider):
            raise AgentError(
                f"Token budget exhausted for {agent.provider}",
                kind=AgentError.UNAVAILABLE,
                agent_id=agent.id,
            )

        logger.debug("Invoking %s with %d context chars", agent.id, len(context))
        try:
            reply = backend.invoke(prompt, context, self.timeout_ms)
        except AgentError as e:
            if e.agent_id is None:
                e.agent_id = agent.id
            raise
        except Exception as e:
            raise AgentError(str(e) or type(e).__name__, kind=AgentError.PROVIDER, agent_id=agent.id) from e

        if reply.token_count < 0:
            raise AgentError(
                f"{agent.id} reported a negative token count",
                kind=AgentError.MALFORMED_RESPONSE,
                agent_id=agent.id,
            )
        if charged:
            self.budget.track(agent.provider, reply.token_count)
        return reply

    def _fail(self, session: SessionState, index: int, agent: AgentProfile, error: AgentError, on_event) -> None:
        logger.error("Step %d failed on %s: %s", index, agent.id, error)
        self._transition(session, RunState(Phase.FAILED, index, agent_id=agent.id, cause=error), on_event)

    # ── State & persistence ───────────────────────────────────────────────

    def _transition(self, session: SessionState, state: RunState, on_event, result: Optional[StepResult] = None) -> None:
        logger.debug("Session %s: %s -> %s", session.session_id, session.state, state)
        session.state = state
        self._notify(on_event, session, result)

    @staticmethod
    def _notify(on_event, session: SessionState, result: Optional[StepResult] = None) -> None:
        if on_event is not None:
            on_event(OrchestrationEvent(session=session, state=session.state, result=result))

    def _finish(self, session: SessionState) -> OrchestrationOutcome:
        outcome = OrchestrationOutcome(session=session)
        if self.store is not None:
            now = self.clock()
            record = project(session, summary_chars=self.summary_chars, timestamp=now.isoformat())
            outcome.record_path = self.store.write(record, when=now)
            logger.info("Session %s saved to %s", session.session_id, outcome.record_path)
        return outcome
