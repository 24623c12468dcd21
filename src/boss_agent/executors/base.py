"""Executor adapter interface.

The orchestration core only knows an executor as "submit a prompt, get a
handle, wait for a terminal result, maybe cancel". Adapters translate that
into a local process, a remote API, or nothing at all (dry run).
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.task import GitCommit


@dataclass
class SubmitOptions:
    """Per-submission settings passed to an executor."""
    working_dir: Optional[Path] = None
    branch_name: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    create_pr: bool = True
    require_review: bool = True
    timeout: Optional[float] = None  # seconds
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutorHandle:
    """Opaque reference to one submitted piece of work."""
    id: str
    submitted_at: float = field(default_factory=time.monotonic)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutorResult:
    """Terminal outcome reported by an executor."""
    success: bool
    output: str = ""
    pr_url: Optional[str] = None
    files_changed: List[str] = field(default_factory=list)
    commits: List[GitCommit] = field(default_factory=list)
    duration: float = 0.0  # seconds
    error: Optional[str] = None


class ExecutorAdapter(ABC):
    """Abstract base class for executors."""

    name: str = "executor"

    @abstractmethod
    async def submit(self, prompt: str, options: SubmitOptions) -> ExecutorHandle:
        """
        Start work on ``prompt`` and return immediately with a handle.

        Raises:
            ExecutorError: If the executor cannot accept the submission
        """

    @abstractmethod
    async def await_result(
        self,
        handle: ExecutorHandle,
        poll_interval: float = 30.0,
        timeout: Optional[float] = None,
    ) -> ExecutorResult:
        """
        Wait until the work behind ``handle`` reaches a terminal state.

        Executors report failures (including timeouts) as an unsuccessful
        ExecutorResult rather than raising.
        """

    async def cancel(self, handle: ExecutorHandle) -> bool:
        """Request cancellation. Returns False when there was nothing to cancel.

        Default no-op for executors that don't support cancellation.
        """
        return False
