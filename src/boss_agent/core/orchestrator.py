"""Top-level façade: analyze, decide, then delegate and track a work item."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import CircularDependencyError, DecompositionError
from ..executors import ExecutorAdapter, create_executor
from ..sessions.manager import TaskSessionManager
from ..utils.rich_logging import ContextLogger
from .agent_registry import AgentRegistry, load_agent_definitions
from .config import BossAgentConfig
from .decision_engine import DecisionEngine
from .delegation_manager import DelegationContext, DelegationManager, DelegationObserver
from .result_aggregator import ResultAggregator
from .task import (
    AgentRole,
    Decision,
    DelegationResult,
    DelegationSession,
    DelegationStatus,
    Decomposition,
    ExecutionResult,
    ExecutionStatus,
    Strategy,
    Subtask,
    SubtaskResult,
    TaskAnalysis,
    TaskSessionError,
    TaskSessionResult,
    TaskType,
    TriggerComment,
    WorkItem,
)
from .task_analyzer import TaskAnalyzer
from .task_decomposer import TaskDecomposer, template_roles
from .work_session import WorkSessionFactory

logger = logging.getLogger(__name__)

# Role that handles a work item delegated as a single unit
DIRECT_ROLES = {
    TaskType.FEATURE: AgentRole.CODE_WRITER,
    TaskType.BUG: AgentRole.DEBUGGER,
    TaskType.REFACTOR: AgentRole.REFACTORER,
    TaskType.TEST: AgentRole.TEST_WRITER,
    TaskType.DOCS: AgentRole.DOCUMENTATION,
    TaskType.MIXED: AgentRole.GENERAL,
}

# Session progress checkpoints; execution fills the span between them
PROGRESS_PLANNED = 10
PROGRESS_EXECUTED = 90
PROGRESS_AGGREGATED = 95
PROGRESS_DONE = 100


class _SessionProgressObserver(DelegationObserver):
    """Feeds subtask lifecycle events into the run's TaskSession."""

    def __init__(self, sessions: TaskSessionManager, run_id: str, total: int):
        self.sessions = sessions
        self.run_id = run_id
        self.total = max(1, total)
        self.finished = 0

    def _percent(self) -> int:
        span = PROGRESS_EXECUTED - PROGRESS_PLANNED
        return PROGRESS_PLANNED + int(span * self.finished / self.total)

    async def subtask_started(self, subtask: Subtask) -> None:
        await self.sessions.update_progress(self.run_id, self._percent(), f"Running: {subtask.title}")

    async def subtask_completed(self, subtask: Subtask, result: SubtaskResult) -> None:
        self.finished += 1
        await self.sessions.update_progress(self.run_id, self._percent(), f"Completed: {subtask.title}")

    async def subtask_failed(self, subtask: Subtask, result: SubtaskResult) -> None:
        self.finished += 1
        await self.sessions.update_progress(self.run_id, self._percent(), f"Failed: {subtask.title}")


@dataclass
class _ActiveRun:
    delegation: DelegationSession
    manager: DelegationManager
    cancelled: bool = False


class BossAgentOrchestrator:
    """
    Sequences Analyze -> Decide -> (Decompose -> Delegate -> Aggregate) for
    one work item at a time and owns the task-session lifecycle.

    ``handle`` returns None when the work item should not be delegated
    (disabled, below threshold, or flagged for manual review). Every failure
    after a run has started is reported as a failed ExecutionResult carrying
    whatever partial summary could be built; only a session conflict, which
    means the work item is already being handled, propagates to the caller.
    """

    def __init__(
        self,
        config: Optional[BossAgentConfig] = None,
        executor: Optional[ExecutorAdapter] = None,
        session_manager: Optional[TaskSessionManager] = None,
        registry: Optional[AgentRegistry] = None,
        observers: Optional[Sequence[DelegationObserver]] = None,
        work_sessions: Optional[WorkSessionFactory] = None,
    ):
        self.config = config or BossAgentConfig()
        self.executor = executor or create_executor(self.config.executor)
        self.sessions = session_manager or TaskSessionManager.from_config(self.config.sessions)
        self.registry = registry or self._build_registry(self.config.agents_file)
        self.observers: List[DelegationObserver] = list(observers or [])
        self.work_sessions = work_sessions or WorkSessionFactory(
            root=self.config.workspace / "worktrees",
            repository=self.config.delegation.repository,
            isolated_branches=self.config.delegation.isolated_branches,
        )

        self.analyzer = TaskAnalyzer()
        self.decision_engine = DecisionEngine(self.config.decision)
        self.decomposer = TaskDecomposer(self.config.decomposition)
        self.aggregator = ResultAggregator()

        # Every role a decomposition can emit must have a prompt builder
        self.registry.validate_roles(list(template_roles()) + list(DIRECT_ROLES.values()))

        self._runs: Dict[str, _ActiveRun] = {}

    def start_session_cleanup(self) -> None:
        """Periodically drop finished sessions, as configured under ``sessions``."""
        self.sessions.start_auto_cleanup(
            interval_hours=self.config.sessions.cleanup_interval_hours,
            max_age_hours=self.config.sessions.max_age_hours,
        )

    @staticmethod
    def _build_registry(agents_file: Optional[Path]) -> AgentRegistry:
        registry = AgentRegistry()
        if agents_file is not None:
            for definition in load_agent_definitions(agents_file).values():
                registry.register(definition)
        return registry

    # -- Planning ---------------------------------------------------------

    def analyze(
        self, work_item: WorkItem, trigger_comment: Optional[TriggerComment] = None
    ) -> TaskAnalysis:
        return self.analyzer.classify(
            work_item.title,
            work_item.description,
            trigger_text=trigger_comment.body if trigger_comment else None,
            priority_hint=work_item.priority_hint,
            work_item_key=work_item.key,
        )

    def decide(self, analysis: TaskAnalysis) -> Decision:
        return self.decision_engine.decide(analysis)

    def plan(
        self, work_item: WorkItem, analysis: TaskAnalysis, decision: Decision, prefix: Optional[str] = None
    ) -> Decomposition:
        """Subtasks and execution strategy for a delegated work item.

        A direct decision yields one subtask handled by the role matching the
        task type; anything else goes through the decomposer.
        """
        if decision.strategy == Strategy.DIRECT:
            subtask = Subtask(
                id=f"{prefix or work_item.key}-main",
                title=work_item.title,
                description=work_item.description or "",
                required_agent_role=DIRECT_ROLES.get(analysis.task_type, AgentRole.GENERAL),
                priority=10,
                complexity=analysis.complexity_score,
            )
            return Decomposition(
                subtasks=[subtask],
                strategy=Strategy.DIRECT,
                estimated_minutes=subtask.complexity * self.config.decomposition.minutes_per_complexity_point,
            )
        return self.decomposer.decompose(
            work_item.title, work_item.description, analysis, parent_id=prefix or work_item.key,
        )

    def preview(
        self, work_item: WorkItem, trigger_comment: Optional[TriggerComment] = None
    ) -> Tuple[TaskAnalysis, Decision, Optional[Decomposition]]:
        """Everything ``handle`` would decide, without executing anything."""
        analysis = self.analyze(work_item, trigger_comment)
        decision = self.decide(analysis)
        decomposition = self.plan(work_item, analysis, decision) if decision.should_delegate else None
        return analysis, decision, decomposition

    # -- Execution --------------------------------------------------------

    async def handle(
        self, work_item: WorkItem, trigger_comment: Optional[TriggerComment] = None
    ) -> Optional[ExecutionResult]:
        """
        Process one work item end to end.

        Returns:
            The terminal ExecutionResult, or None when the item is not delegated

        Raises:
            SessionConflictError: the work item already has an active run
        """
        if not self.config.enabled:
            logger.info(f"Boss agent disabled, skipping {work_item.key}")
            return None

        analysis = self.analyze(work_item, trigger_comment)
        decision = self.decide(analysis)
        logger.info(
            f"{work_item.key}: score {analysis.complexity_score}/10 "
            f"({analysis.complexity_tier.value}, {analysis.task_type.value}), "
            f"delegate={decision.should_delegate}, strategy={decision.strategy.value}"
        )
        if not decision.should_delegate:
            logger.info(f"Not delegating {work_item.key}: {decision.reason}")
            return None

        run_id = f"boss-{uuid.uuid4().hex[:12]}"
        started_at = datetime.now(UTC)
        started = time.monotonic()
        run_log = ContextLogger(logger)
        run_log.run_started(run_id, work_item.title, work_item.key)

        delegation = DelegationSession(
            id=run_id,
            work_item_id=work_item.id,
            analysis=analysis,
            decision=decision,
        )
        await self.sessions.create_session(
            run_id,
            work_item,
            delegated_to=decision.delegate_target,
            strategy=decision.strategy,
            metadata={
                "complexity_score": analysis.complexity_score,
                "task_type": analysis.task_type.value,
                "rule": decision.rule,
            },
        )

        try:
            return await self._delegate(
                run_id, work_item, trigger_comment, analysis, decision, delegation, run_log, started_at, started
            )
        except asyncio.CancelledError:
            await self._abandon(run_id, run_log)
            raise

    async def _delegate(
        self,
        run_id: str,
        work_item: WorkItem,
        trigger_comment: Optional[TriggerComment],
        analysis: TaskAnalysis,
        decision: Decision,
        delegation: DelegationSession,
        run_log: ContextLogger,
        started_at: datetime,
        started: float,
    ) -> ExecutionResult:
        """Plan, execute and aggregate a run whose session is already registered."""
        subtasks: List[Subtask] = []
        results: List[SubtaskResult] = []
        error: Optional[str] = None
        error_code: Optional[str] = None
        run: Optional[_ActiveRun] = None

        try:
            run_log.phase_change("decomposing")
            decomposition = self.plan(work_item, analysis, decision)
            delegation.decomposition = decomposition
            subtasks = decomposition.subtasks
            await self.sessions.update_progress(
                run_id, PROGRESS_PLANNED, f"Planned {len(subtasks)} subtask(s) ({decomposition.strategy.value})"
            )

            manager = DelegationManager(
                self.executor,
                registry=self.registry,
                work_sessions=self.work_sessions,
                observers=[_SessionProgressObserver(self.sessions, run_id, len(subtasks)), *self.observers],
                max_concurrency=self.config.delegation.max_concurrency,
                poll_interval=self.config.executor.poll_interval,
            )
            run = _ActiveRun(delegation=delegation, manager=manager)
            self._runs[run_id] = run

            delegation.transition(DelegationStatus.EXECUTING)
            run_log.phase_change("executing")
            results = await manager.run(
                subtasks,
                decomposition.strategy,
                context=DelegationContext(
                    work_item_key=work_item.key,
                    work_item_title=work_item.title,
                    parent_branch=decision.options.branch_name,
                    trigger_comment=trigger_comment.body if trigger_comment else None,
                    options=decision.options,
                ),
            )
        except CircularDependencyError as e:
            results = e.partial_results
            error, error_code = str(e), "circular_dependency"
        except DecompositionError as e:
            error, error_code = str(e), "decomposition_error"
        except asyncio.CancelledError:
            if run is not None:
                run.cancelled = True
                run.manager.cancel_all()
            raise
        except Exception as e:
            logger.exception(f"Run {run_id} for {work_item.key} failed unexpectedly")
            error, error_code = str(e) or type(e).__name__, "internal_error"
        finally:
            self._runs.pop(run_id, None)

        delegation.transition(DelegationStatus.AGGREGATING)
        run_log.phase_change("aggregating")
        aggregated = self.aggregator.aggregate(subtasks, results)
        await self.sessions.update_progress(run_id, PROGRESS_AGGREGATED, "Aggregated results")

        if run is not None and run.cancelled:
            status = ExecutionStatus.CANCELLED
            error = error or "Run cancelled"
        elif error is not None or not aggregated.success:
            status = ExecutionStatus.FAILED
            error = error or f"{len(aggregated.failed_subtasks)} subtask(s) failed"
        else:
            status = ExecutionStatus.SUCCESS

        duration_ms = int((time.monotonic() - started) * 1000)
        await self._record_outcome(run_id, status, aggregated, error, error_code, duration_ms)

        delegation.transition(
            DelegationStatus.COMPLETED if status == ExecutionStatus.SUCCESS else DelegationStatus.FAILED
        )
        if status == ExecutionStatus.SUCCESS:
            run_log.run_completed(
                duration_ms / 1000,
                f"{len(results)} subtask(s), {len(aggregated.files_modified)} file(s)",
            )
        else:
            run_log.run_failed(error)

        return ExecutionResult(
            run_id=run_id,
            work_item_id=work_item.id,
            status=status,
            strategy=delegation.decomposition.strategy if delegation.decomposition else decision.strategy,
            result=aggregated,
            error=error,
            duration_ms=duration_ms,
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )

    async def _abandon(self, run_id: str, run_log: ContextLogger) -> None:
        """Settle the session of a run whose caller cancelled it mid-flight."""
        session = await self.sessions.get_session_by_run_id(run_id)
        if session is not None and not session.status.is_terminal:
            await self.sessions.mark_cancelled(run_id)
        run_log.run_failed("Run cancelled by caller")

    async def _record_outcome(
        self,
        run_id: str,
        status: ExecutionStatus,
        aggregated: DelegationResult,
        error: Optional[str],
        error_code: Optional[str],
        duration_ms: int,
    ) -> None:
        pr_url = next((r.pr_url for r in aggregated.subtask_results if r.pr_url), None)
        session_result = TaskSessionResult(
            pr_url=pr_url,
            files_changed=aggregated.files_modified,
            commit_count=len(aggregated.commits),
            duration_ms=duration_ms,
            summary=aggregated.summary,
        )

        if status == ExecutionStatus.SUCCESS:
            await self.sessions.update_progress(run_id, PROGRESS_DONE, "Completed")
            await self.sessions.mark_completed(run_id, session_result)
        elif status == ExecutionStatus.CANCELLED:
            await self.sessions.store.update_result(run_id, session_result)
            await self.sessions.mark_cancelled(run_id)
        else:
            await self.sessions.store.update_result(run_id, session_result)
            await self.sessions.mark_failed(run_id, TaskSessionError(
                message=error or "Run failed",
                code=error_code or "subtasks_failed",
                details={"failed_subtasks": aggregated.failed_subtasks},
            ))

    async def cancel_run(self, run_id: str) -> bool:
        """
        Cancel an in-flight run.

        Returns promptly; executor teardown happens in the background and the
        run's ``handle`` call returns a cancelled ExecutionResult.

        Returns:
            False when no run with that id is in flight
        """
        run = self._runs.get(run_id)
        if run is None:
            logger.warning(f"No active run {run_id} to cancel")
            return False

        run.cancelled = True
        cancelled = run.manager.cancel_all()
        await self.sessions.mark_cancelled(run_id)
        logger.info(f"Cancelled run {run_id} ({cancelled} running subtask(s) stopped)")
        return True

    # -- Inspection -------------------------------------------------------

    async def get_session_by_run_id(self, run_id: str):
        return await self.sessions.get_session_by_run_id(run_id)

    async def get_session_by_work_item_id(self, work_item_id: str):
        return await self.sessions.get_session_by_work_item_id(work_item_id)

    async def list_active_sessions(self):
        return await self.sessions.list_active_sessions()

    def get_active_delegations(self) -> List[DelegationSession]:
        return [run.delegation for run in self._runs.values()]

    def get_active_subtasks(self, run_id: str) -> List[Subtask]:
        run = self._runs.get(run_id)
        return run.manager.get_active_subtasks() if run else []
