"""Executor adapters that carry out delegated work."""

from .base import ExecutorAdapter, ExecutorHandle, ExecutorResult, SubmitOptions
from .claude_cli import ClaudeCLIExecutor
from .dry_run import DryRunExecutor

__all__ = [
    "ExecutorAdapter",
    "ExecutorHandle",
    "ExecutorResult",
    "SubmitOptions",
    "ClaudeCLIExecutor",
    "DryRunExecutor",
    "create_executor",
]


def create_executor(config) -> ExecutorAdapter:
    """Build the executor named by an ExecutorConfig."""
    if config.kind == "dry_run":
        return DryRunExecutor()
    return ClaudeCLIExecutor(
        executable=config.executable,
        model=config.model,
        max_turns=config.max_turns,
        allowed_tools=config.allowed_tools,
        logs_dir=config.logs_dir,
    )
