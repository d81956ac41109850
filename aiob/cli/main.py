"""
AIOB CLI - run multi-agent orchestration sessions.

Session records are written to .aicf/recent/ (configurable).
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from aiob import __version__
from aiob.agents.registry import CapabilityRegistry
from aiob.aicf.models import MemoryRecord
from aiob.aicf.store import SessionStore
from aiob.errors import AiobError
from aiob.orchestration.budget import BudgetTracker
from aiob.orchestration.loop import OrchestrationEvent, OrchestrationOutcome, Orchestrator
from aiob.orchestration.session import Phase
from aiob.planning.analyzer import TaskAnalyzer
from aiob.providers.base import (
    AgentBackend,
    build_backends,
    credentials_configured,
    mock_backends,
)
from aiob.validation.config import ENV_API_KEYS, Config

console = Console()

DEMO_SCENARIOS = [
    ("Code Review", "Review this React component for performance issues and suggest optimizations"),
    ("System Design", "Design and build a scalable authentication system for a web application"),
    ("Bug Analysis", "Debug why my Node.js server is crashing under high load"),
]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _print_banner() -> None:
    console.print(
        Panel(
            "[bold blue]AIOB[/bold blue] - AI Orchestration Board\n"
            "[dim]Agents hand each other compressed AICF context[/dim]",
            subtitle=f"v{__version__}",
            border_style="blue",
        )
    )


def _load_config() -> Config:
    config = Config.load()
    config.merged  # validate early so errors surface before any work
    return config


def _load_budget(config: Config) -> BudgetTracker:
    budgets = {name: None for name in ENV_API_KEYS}
    budgets.update(config.token_budgets())
    return BudgetTracker.load(config.budget_path(), budgets)


def _build_orchestrator(
    config: Config,
    backends: Dict[str, AgentBackend],
    registry: CapabilityRegistry,
    budget: Optional[BudgetTracker] = None,
) -> Orchestrator:
    settings = config.merged.orchestrator
    available = registry.restrict(backends)
    return Orchestrator(
        registry=available,
        backends=backends,
        store=SessionStore(config.session_dir()),
        summary_chars=settings.summary_chars,
        timeout_ms=settings.timeout_ms,
        analyzer=TaskAnalyzer(available, reject_empty=settings.reject_empty_tasks),
        budget=budget,
    )


def _print_event(event: OrchestrationEvent) -> None:
    state = event.state
    session = event.session
    if state.phase is Phase.PLANNING:
        console.print(f"[dim]Session {session.session_id}[/dim]")
        console.print(f"[bold]Execution plan:[/bold] {len(session.plan)} step(s) ({session.plan.intent})")
    elif state.phase is Phase.EXECUTING and event.result is None:
        step = session.plan.steps[state.step_index]
        console.print(f"\n[cyan]Step {step.index + 1}:[/cyan] {escape(step.description)}")
    elif event.result is not None and state.phase is Phase.EXECUTING:
        console.print(
            f"  [green]✓[/green] {event.result.agent_id} "
            f"[dim]({event.result.token_count} tokens)[/dim]"
        )
    elif state.phase is Phase.FINALIZING:
        console.print("\n[cyan]Synthesizing final result...[/cyan]")
    elif state.phase is Phase.FAILED:
        console.print(
            f"  [red]✗ Step {state.step_index} failed on {state.agent_id}: {escape(str(state.cause))}[/red]"
        )
    elif state.phase is Phase.CANCELLED:
        console.print(f"  [yellow]Cancelled before step {state.step_index}[/yellow]")


def _print_outcome(outcome: OrchestrationOutcome) -> None:
    session = outcome.session
    if outcome.succeeded:
        console.print()
        console.print(Panel(Text(outcome.final_output or ""), title="Final result", border_style="green"))
        console.print(
            f"[green]Complete.[/green] {len(session.collaborators)} agent(s) collaborated, "
            f"{session.total_tokens} tokens."
        )
    else:
        state = outcome.state
        console.print(
            f"[red]Run {state.phase.value} at step {state.step_index}"
            f"{f' (agent {state.agent_id})' if state.agent_id else ''}.[/red] "
            f"{len(session.results)} completed step(s) kept."
        )
    if outcome.record_path:
        console.print(f"[dim]Session saved to {outcome.record_path}[/dim]")


def _run(
    orchestrator: Orchestrator,
    task: str,
    session_id: Optional[str] = None,
    prior: Optional[MemoryRecord] = None,
) -> OrchestrationOutcome:
    outcome = orchestrator.run(task, session_id=session_id, on_event=_print_event, prior=prior)
    _print_outcome(outcome)
    return outcome


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, version: bool, verbose: bool) -> None:
    """
    AIOB - AI Orchestration Board.

    \b
    Examples:
        aiob init
        aiob start "Build a login page"
        aiob status
        aiob budget
        aiob demo
    """
    _setup_logging(verbose)
    if version:
        console.print(f"AIOB v{__version__}")
        ctx.exit()
    if ctx.invoked_subcommand is None:
        _print_banner()
        console.print(ctx.get_help())


@cli.command()
@click.argument("task", required=False, nargs=-1)
@click.option("--session-id", help="Continue a session: agents see its latest record")
@click.option("--fresh", is_flag=True, help="With --session-id, ignore earlier records")
@click.option("--mock", is_flag=True, help="Use mock agents instead of real providers")
def start(task: tuple, session_id: Optional[str], fresh: bool, mock: bool) -> None:
    """
    Run one orchestration session for TASK.

    Real providers are charged against the token budgets in the config.
    """
    _print_banner()
    try:
        config = _load_config()
        registry = config.build_registry()
        backends = mock_backends(registry) if mock else build_backends(registry, config)

        task_str = " ".join(task)
        if not task_str and sys.stdin.isatty():
            task_str = Prompt.ask("[bold green]What should the agents work on?[/bold green]")

        budget = None if mock else _load_budget(config)
        orchestrator = _build_orchestrator(config, backends, registry, budget)

        prior = None
        if session_id and not fresh:
            prior = orchestrator.store.load_latest(session_id)
            if prior is not None:
                console.print(
                    f"[dim]Continuing session {session_id} "
                    f"({len(prior.ai_actions)} earlier action(s))[/dim]"
                )

        outcome = _run(orchestrator, task_str, session_id, prior)
        if budget is not None:
            budget.save(config.budget_path())
    except (AiobError, ValueError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    if not outcome.succeeded:
        sys.exit(1)


@cli.command()
def init() -> None:
    """Write a starter .aiob/config.yaml in the current directory."""
    try:
        path = Config.create_default_local()
    except OSError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Configuration at {path}")
    console.print("[dim]Set ANTHROPIC_API_KEY, OPENAI_API_KEY or OPENROUTER_API_KEY to enable agents.[/dim]")


@cli.command()
def status() -> None:
    """List known agents and whether their credentials are configured."""
    try:
        config = _load_config()
        registry = config.build_registry()
    except AiobError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title="Agents")
    table.add_column("Agent", style="cyan")
    table.add_column("Provider")
    table.add_column("Capabilities")
    table.add_column("Credentials")

    ready = 0
    for profile in registry:
        configured = credentials_configured(profile, config)
        ready += configured
        table.add_row(
            profile.id,
            profile.provider or "[dim]-[/dim]",
            ", ".join(sorted(profile.capabilities)),
            "[green]✓[/green]" if configured else "[yellow]✗[/yellow]",
        )

    console.print(table)
    console.print(f"{ready}/{len(registry)} agent(s) ready")
    console.print(f"[dim]Sessions: {config.session_dir()}[/dim]")


@cli.command()
@click.option("--reset", is_flag=True, help="Clear recorded spending")
def budget(reset: bool) -> None:
    """Show token budgets and spending per provider."""
    try:
        config = _load_config()
        tracker = _load_budget(config)
        if reset:
            tracker = BudgetTracker(tracker.budgets)
            tracker.save(config.budget_path())
            console.print("[green]✓[/green] Spending reset")
    except (AiobError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title="Token budgets")
    table.add_column("Provider", style="cyan")
    table.add_column("Budget", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Used", justify="right")

    total_budget = 0
    total_spent = 0
    for name, status in tracker.status().items():
        total_spent += status.spent
        if status.budget is None:
            table.add_row(name, "unlimited", str(status.spent), "-", "-")
            continue

        total_budget += status.budget
        used = status.percent_used
        color = "red" if used > 80 else "yellow" if used > 50 else "green"
        table.add_row(
            name,
            str(status.budget),
            str(status.spent),
            str(status.remaining),
            f"[{color}]{used:.1f}%[/{color}]",
        )

    console.print(table)
    console.print(f"Total: {total_spent} tokens spent, {total_budget} budgeted")


@cli.command()
@click.option(
    "--scenario",
    "-s",
    type=click.IntRange(1, len(DEMO_SCENARIOS)),
    help="Run only this scenario number",
)
def demo(scenario: Optional[int]) -> None:
    """Run built-in scenarios against mock agents."""
    _print_banner()
    try:
        config = _load_config()
    except AiobError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    registry = CapabilityRegistry.default()
    scenarios = [DEMO_SCENARIOS[scenario - 1]] if scenario else DEMO_SCENARIOS

    failed = 0
    for name, task in scenarios:
        console.print(f"\n[bold blue]Scenario: {name}[/bold blue]")
        orchestrator = _build_orchestrator(config, mock_backends(registry), registry)
        outcome = _run(orchestrator, task)
        failed += not outcome.succeeded

    if failed:
        sys.exit(1)


@cli.command()
def sessions() -> None:
    """List saved session record files."""
    try:
        store = SessionStore(_load_config().session_dir())
    except AiobError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    files = store.list_files()
    if not files:
        console.print("[dim]No sessions saved yet.[/dim]")
        return

    for path in files:
        console.print(f"  [cyan]{path.name}[/cyan]")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def show(path: Path) -> None:
    """Decode and display the records in a session file."""
    try:
        records = SessionStore(path.parent).read_path(path)
    except AiobError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    for number, record in enumerate(records, 1):
        table = Table(title=f"Record {number}: {record.conversation_id} @ {record.timestamp}")
        table.add_column("Agent", style="cyan")
        table.add_column("Work")
        table.add_column("Output")
        for action, work in zip(record.ai_actions, record.technical_work):
            table.add_row(Text(action.type), Text(work.type), Text(action.details))
        console.print(table)

        state = record.working_state
        console.print(f"  [bold]Next:[/bold] {escape(state.next_action)}")
        if state.blockers:
            console.print(f"  [red]Blockers:[/red] {escape(', '.join(state.blockers))}")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
