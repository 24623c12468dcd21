"""Main CLI for boss-agent."""

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from ..core.config import BossAgentConfig, load_config
from ..core.orchestrator import BossAgentOrchestrator
from ..core.task import (
    Decision,
    Decomposition,
    ExecutionResult,
    PriorityTier,
    SessionStatus,
    TaskAnalysis,
    TriggerComment,
    WorkItem,
)
from ..errors import ErrorTranslator
from ..executors import DryRunExecutor
from ..integrations.jira.client import JIRAWorkItemSource
from ..sessions import FileTaskSessionStore, TaskSessionManager
from ..utils.rich_logging import setup_rich_logging
from ..utils.validators import slugify

console = Console()
translator = ErrorTranslator()

STATUS_STYLES = {
    "active": "yellow",
    "completed": "green",
    "success": "green",
    "failed": "red",
    "cancelled": "dim",
}


@click.group()
@click.option("--config", "-c", "config_path", default="config/boss-agent.yaml", help="Config file")
@click.option("--log-level", "-l", default=None, help="Override log level (DEBUG, INFO, ...)")
@click.pass_context
def cli(ctx, config_path, log_level):
    """Boss Agent - analyze, split and delegate work items to coding agents."""
    ctx.ensure_object(dict)
    config = load_config(Path(config_path))
    setup_rich_logging(
        log_level=log_level or config.log_level,
        workspace=config.workspace,
        use_file=True,
    )
    ctx.obj["config"] = config


def _session_manager(config: BossAgentConfig) -> TaskSessionManager:
    return TaskSessionManager(FileTaskSessionStore(config.sessions.directory))


def _work_item(title: str, description: Optional[str], key: Optional[str], priority: Optional[str]) -> WorkItem:
    key = key or f"local-{slugify(title, max_length=30) or 'task'}"
    return WorkItem(
        id=key,
        key=key,
        title=title,
        description=description,
        priority_hint=PriorityTier(priority) if priority else None,
    )


def _print_error(e: Exception) -> None:
    console.print(translator.format_for_cli(translator.translate(e)))


def _print_plan(analysis: TaskAnalysis, decision: Decision, decomposition: Optional[Decomposition]) -> None:
    table = Table(title="Analysis", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Type", analysis.task_type.value)
    table.add_row("Complexity", f"{analysis.complexity_score}/10 ({analysis.complexity_tier.value})")
    table.add_row("Priority", analysis.priority_tier.value)
    table.add_row("Estimated time", analysis.estimated_time)
    table.add_row("Keywords", ", ".join(sorted(analysis.keywords)) or "-")
    if analysis.ambiguity_signals:
        table.add_row("Ambiguity", ", ".join(sorted(analysis.ambiguity_signals)))
    table.add_row("Reasoning", analysis.reasoning)
    console.print(table)

    table = Table(title="Decision", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    delegate_style = "green" if decision.should_delegate else "yellow"
    table.add_row("Delegate", f"[{delegate_style}]{decision.should_delegate}[/]")
    table.add_row("Target", decision.delegate_target.value)
    table.add_row("Strategy", f"{decision.strategy.value} (rule {decision.rule})")
    table.add_row("Branch", decision.options.branch_name or "-")
    table.add_row("Timeout", f"{int(decision.options.timeout or 0) // 60} min")
    table.add_row("Labels", ", ".join(decision.options.labels))
    table.add_row("Estimated cost", str(decision.estimated_cost))
    table.add_row("Reason", decision.reason)
    console.print(table)

    if decomposition is None:
        return

    table = Table(title=f"Subtasks ({decomposition.strategy.value}, ~{decomposition.estimated_minutes} min)")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Role")
    table.add_column("Depends on")
    table.add_column("Complexity", justify="right")
    for subtask in decomposition.subtasks:
        table.add_row(
            subtask.id,
            subtask.title,
            subtask.required_agent_role.value,
            ", ".join(subtask.dependencies) or "-",
            str(subtask.complexity),
        )
    console.print(table)


def _print_result(result: Optional[ExecutionResult]) -> None:
    if result is None:
        console.print("[yellow]Not delegated: below the delegation threshold or needs manual review[/]")
        return

    style = STATUS_STYLES.get(result.status.value, "white")
    console.print(f"\n[bold]Run {result.run_id}[/]: [{style}]{result.status.value}[/] in {result.duration_ms / 1000:.1f}s")
    if result.error:
        console.print(f"[red]{result.error}[/]")
    if result.result is not None:
        console.print(Markdown(result.result.summary))


def _orchestrator(config: BossAgentConfig, dry_run: bool) -> BossAgentOrchestrator:
    return BossAgentOrchestrator(
        config=config,
        executor=DryRunExecutor() if dry_run else None,
        session_manager=_session_manager(config),
    )


@cli.command()
@click.argument("title")
@click.option("--description", "-d", default=None, help="Work item description")
@click.option("--comment", default=None, help="Trigger comment text")
@click.option("--priority", "-p", type=click.Choice([p.value for p in PriorityTier]), default=None)
@click.option("--key", "-k", default=None, help="Work item key")
@click.pass_context
def analyze(ctx, title, description, comment, priority, key):
    """Show the analysis, decision and subtask plan for a work item."""
    config = ctx.obj["config"]
    try:
        orchestrator = BossAgentOrchestrator(config=config, executor=DryRunExecutor())
        item = _work_item(title, description, key, priority)
        trigger = TriggerComment(body=comment) if comment else None
        _print_plan(*orchestrator.preview(item, trigger))
    except Exception as e:
        _print_error(e)
        raise SystemExit(1)


@cli.command()
@click.argument("title")
@click.option("--description", "-d", default=None, help="Work item description")
@click.option("--comment", default=None, help="Trigger comment text")
@click.option("--priority", "-p", type=click.Choice([p.value for p in PriorityTier]), default=None)
@click.option("--key", "-k", default=None, help="Work item key")
@click.option("--dry-run", is_flag=True, help="Run the full flow without invoking an agent")
@click.pass_context
def run(ctx, title, description, comment, priority, key, dry_run):
    """Analyze a work item and delegate it if warranted."""
    config = ctx.obj["config"]
    item = _work_item(title, description, key, priority)
    trigger = TriggerComment(body=comment) if comment else None

    console.print(f"[bold]Processing {item.key}: {title}[/]")
    try:
        result = asyncio.run(_orchestrator(config, dry_run).handle(item, trigger))
    except Exception as e:
        _print_error(e)
        raise SystemExit(1)

    _print_result(result)
    if result is not None and not result.succeeded:
        raise SystemExit(1)


@cli.command()
@click.argument("issue_key")
@click.option("--dry-run", is_flag=True, help="Run the full flow without invoking an agent")
@click.option("--report/--no-report", default=False, help="Post the run summary as a JIRA comment")
@click.pass_context
def jira(ctx, issue_key, dry_run, report):
    """Fetch a JIRA issue and delegate it."""
    config = ctx.obj["config"]
    if config.jira is None:
        console.print("[red]Error: no jira section in config[/]")
        raise SystemExit(1)

    try:
        source = JIRAWorkItemSource(config.jira)
        item = source.get_work_item(issue_key)
        console.print(f"[bold]Processing {item.key}: {item.title}[/]")
        result = asyncio.run(_orchestrator(config, dry_run).handle(item))
        if report and result is not None:
            source.report_result(item.key, result)
    except Exception as e:
        _print_error(e)
        raise SystemExit(1)

    _print_result(result)


@cli.group()
def sessions():
    """Inspect and clean up task sessions."""


@sessions.command("list")
@click.option("--active", is_flag=True, help="Only active sessions")
@click.pass_context
def sessions_list(ctx, active):
    """List task sessions."""
    manager = _session_manager(ctx.obj["config"])

    async def fetch():
        if active:
            return await manager.list_active_sessions()
        return await manager.list_all_sessions()

    items = sorted(asyncio.run(fetch()), key=lambda s: s.started_at, reverse=True)
    if not items:
        console.print("[dim]No sessions[/]")
        return

    table = Table()
    table.add_column("Run")
    table.add_column("Work item")
    table.add_column("Status")
    table.add_column("Strategy")
    table.add_column("Progress", justify="right")
    table.add_column("Step")
    table.add_column("Updated")
    now = datetime.now(UTC)
    for s in items:
        style = STATUS_STYLES.get(s.status.value, "white")
        age = int((now - s.last_updated_at).total_seconds() // 60)
        table.add_row(
            s.run_id,
            s.work_item_label,
            f"[{style}]{s.status.value}[/]",
            s.strategy.value if s.strategy else "-",
            f"{s.progress}%",
            s.current_step or "-",
            f"{age}m ago",
        )
    console.print(table)


@sessions.command("show")
@click.argument("session_id")
@click.pass_context
def sessions_show(ctx, session_id):
    """Show one session, by run id or work item id."""
    manager = _session_manager(ctx.obj["config"])

    async def fetch():
        return (
            await manager.get_session_by_run_id(session_id)
            or await manager.get_session_by_work_item_id(session_id)
        )

    session = asyncio.run(fetch())
    if session is None:
        console.print(f"[red]No session found for {session_id}[/]")
        raise SystemExit(1)

    style = STATUS_STYLES.get(session.status.value, "white")
    console.print(f"[bold]{session.run_id}[/] → {session.work_item_label} ({session.title})")
    console.print(f"Status: [{style}]{session.status.value}[/]  Progress: {session.progress}%")
    if session.current_step:
        console.print(f"Step: {session.current_step}")
    console.print(f"Started: {session.started_at.isoformat()}  Updated: {session.last_updated_at.isoformat()}")
    if session.error:
        console.print(f"[red]Error ({session.error.code or 'unknown'}): {session.error.message}[/]")
    if session.result:
        if session.result.pr_url:
            console.print(f"PR: {session.result.pr_url}")
        if session.result.summary:
            console.print(Markdown(session.result.summary))


@sessions.command("cancel")
@click.argument("session_id")
@click.pass_context
def sessions_cancel(ctx, session_id):
    """Mark an active session cancelled, by run id or work item id.

    Use this to release a work item whose run died without settling its
    session. A run still executing in another process is not interrupted.
    """
    manager = _session_manager(ctx.obj["config"])

    async def cancel():
        session = (
            await manager.get_session_by_run_id(session_id)
            or await manager.get_session_by_work_item_id(session_id)
        )
        if session is None or session.status != SessionStatus.ACTIVE:
            return session, False
        return session, await manager.mark_cancelled(session.run_id)

    session, cancelled = asyncio.run(cancel())
    if session is None:
        console.print(f"[red]No session found for {session_id}[/]")
        raise SystemExit(1)
    if not cancelled:
        console.print(f"[red]Session {session.run_id} is {session.status.value}, not active[/]")
        raise SystemExit(1)
    console.print(f"[green]✓ Cancelled {session.run_id} ({session.work_item_label})[/]")


@sessions.command("cleanup")
@click.option("--max-age-hours", type=float, default=None, help="Age cutoff (default from config)")
@click.pass_context
def sessions_cleanup(ctx, max_age_hours):
    """Delete finished sessions older than the cutoff."""
    config = ctx.obj["config"]
    manager = _session_manager(config)
    max_age = max_age_hours if max_age_hours is not None else config.sessions.max_age_hours
    removed = asyncio.run(manager.cleanup(max_age))
    console.print(f"[green]✓ Removed {removed} session(s) older than {max_age}h[/]")


@sessions.command("stats")
@click.pass_context
def sessions_stats(ctx):
    """Show session counts and success rate."""
    stats = asyncio.run(_session_manager(ctx.obj["config"]).get_statistics())
    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    for status in SessionStatus:
        table.add_row(status.value, str(stats[status.value]))
    table.add_row("total", str(stats["total"]))
    table.add_row("avg duration", f"{stats['average_duration_ms'] / 1000:.1f}s")
    table.add_row("success rate", f"{stats['success_rate']:.0%}")
    console.print(table)


if __name__ == "__main__":
    cli()
