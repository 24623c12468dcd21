"""Exception hierarchy for the orchestration engine."""

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from ..core.task import SubtaskResult


class BossAgentError(Exception):
    """Base class for errors raised by the orchestration engine."""


class DecompositionError(BossAgentError):
    """A subtask set is structurally invalid (duplicate or dangling ids)."""


class CircularDependencyError(DecompositionError):
    """The scheduler found pending subtasks whose dependencies can never be met.

    Carries the results gathered before the run was aborted so callers can
    still report partial progress.
    """

    def __init__(
        self,
        pending_ids: Sequence[str],
        partial_results: Optional[List["SubtaskResult"]] = None,
    ):
        self.pending_ids = list(pending_ids)
        self.partial_results = list(partial_results or [])
        super().__init__(
            "Circular dependency detected: no runnable subtasks among "
            f"{', '.join(self.pending_ids)}"
        )


class SessionConflictError(BossAgentError):
    """A work item already has an active run."""

    def __init__(self, work_item_id: str, run_id: str):
        self.work_item_id = work_item_id
        self.run_id = run_id
        super().__init__(
            f"Work item {work_item_id} already has an active run {run_id}"
        )


class ExecutorError(BossAgentError):
    """The executor adapter could not accept or track a submission."""
