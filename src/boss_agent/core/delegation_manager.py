"""Scheduler that runs subtasks against an executor adapter.

Three scheduling strategies are supported:

- sequential: one at a time in the given order, stopping at the first failure
- parallel: a pool of at most ``max_concurrency`` workers drains a queue of
  subtasks; every subtask runs regardless of the others' outcome
- hybrid: repeatedly runs the ready set (pending subtasks whose dependencies
  all completed) with the parallel rule until nothing is left

In-flight bookkeeping is keyed by subtask id. Lifecycle notifications go to
:class:`DelegationObserver` instances and never affect the returned results.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from ..errors import CircularDependencyError
from ..executors.base import ExecutorAdapter, ExecutorHandle, ExecutorResult, SubmitOptions
from ..utils.error_handling import log_and_ignore
from .agent_registry import AgentRegistry
from .task import ExecutionOptions, Strategy, Subtask, SubtaskResult
from .task_decomposer import validate_subtasks
from .work_session import WorkSession, WorkSessionFactory

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_POLL_INTERVAL = 30.0

CANCELLED_ERROR = "Cancelled"


class DelegationObserver:
    """Advisory lifecycle callbacks. Subclass and override what you need."""

    async def subtask_started(self, subtask: Subtask) -> None:
        pass

    async def subtask_completed(self, subtask: Subtask, result: SubtaskResult) -> None:
        pass

    async def subtask_failed(self, subtask: Subtask, result: SubtaskResult) -> None:
        pass


@dataclass
class DelegationContext:
    """What every subtask of one run shares."""
    work_item_key: str = "task"
    work_item_title: str = ""
    parent_branch: Optional[str] = None
    trigger_comment: Optional[str] = None
    options: ExecutionOptions = field(default_factory=ExecutionOptions)


@dataclass
class _ActiveSubtask:
    subtask: Subtask
    started: float
    session: Optional[WorkSession] = None
    handle: Optional[ExecutorHandle] = None
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)


class DelegationManager:
    """Runs one set of subtasks; create one manager per run."""

    def __init__(
        self,
        executor: ExecutorAdapter,
        registry: Optional[AgentRegistry] = None,
        work_sessions: Optional[WorkSessionFactory] = None,
        observers: Optional[Sequence[DelegationObserver]] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.executor = executor
        self.registry = registry or AgentRegistry()
        self.work_sessions = work_sessions or WorkSessionFactory()
        self.observers: List[DelegationObserver] = list(observers or [])
        self.max_concurrency = max_concurrency
        self.poll_interval = poll_interval

        self._active: Dict[str, _ActiveSubtask] = {}
        self._cancel_requested = False
        self._cancel_tasks: Set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def add_observer(self, observer: DelegationObserver) -> None:
        self.observers.append(observer)

    def get_active_subtasks(self) -> List[Subtask]:
        return [entry.subtask for entry in self._active.values()]

    async def run(
        self,
        subtasks: List[Subtask],
        strategy: Strategy,
        max_concurrency: Optional[int] = None,
        context: Optional[DelegationContext] = None,
    ) -> List[SubtaskResult]:
        """
        Execute ``subtasks`` with the given scheduling strategy.

        Returns:
            One result per executed subtask: in the given order for sequential
            runs, in completion batches for hybrid runs.

        Raises:
            DecompositionError: duplicate or dangling subtask ids
            CircularDependencyError: hybrid run found no runnable subtask
            ValueError: strategy is not a scheduling strategy
        """
        validate_subtasks(subtasks)
        limit = max_concurrency or self.max_concurrency
        if limit < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {limit}")
        context = context or DelegationContext()

        logger.info(
            f"Delegating {len(subtasks)} subtask(s) for {context.work_item_key} "
            f"using {strategy.value} strategy (max concurrency {limit})"
        )

        if strategy in (Strategy.SEQUENTIAL, Strategy.DIRECT):
            return await self._run_sequential(subtasks, context)
        if strategy == Strategy.PARALLEL:
            return await self._run_parallel(subtasks, limit, context)
        if strategy == Strategy.HYBRID:
            return await self._run_hybrid(subtasks, limit, context)
        raise ValueError(f"{strategy.value} is not a scheduling strategy")

    async def _run_sequential(
        self, subtasks: List[Subtask], context: DelegationContext
    ) -> List[SubtaskResult]:
        results: List[SubtaskResult] = []
        for subtask in subtasks:
            if self._cancel_requested:
                break
            result = await self._execute_subtask(subtask, context)
            results.append(result)
            if not result.success:
                remaining = len(subtasks) - len(results)
                logger.warning(
                    f"Subtask {subtask.id} failed, stopping sequential run "
                    f"({remaining} subtask(s) not started)"
                )
                break
        return results

    async def _run_parallel(
        self, subtasks: List[Subtask], limit: int, context: DelegationContext
    ) -> List[SubtaskResult]:
        queue: asyncio.Queue = asyncio.Queue()
        for subtask in subtasks:
            queue.put_nowait(subtask)
        results: Dict[str, SubtaskResult] = {}

        async def worker() -> None:
            while not self._cancel_requested:
                try:
                    subtask = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[subtask.id] = await self._execute_subtask(subtask, context)

        workers = [asyncio.create_task(worker()) for _ in range(min(limit, len(subtasks)))]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                if not task.done():
                    task.cancel()

        return [results[s.id] for s in subtasks if s.id in results]

    async def _run_hybrid(
        self, subtasks: List[Subtask], limit: int, context: DelegationContext
    ) -> List[SubtaskResult]:
        pending: Dict[str, Subtask] = {s.id: s for s in subtasks}
        completed: Set[str] = set()
        failed: Set[str] = set()
        results: List[SubtaskResult] = []

        while pending and not self._cancel_requested:
            results.extend(await self._settle_blocked(pending, failed))
            if not pending:
                break

            ready = [
                s for s in pending.values()
                if all(dep in completed for dep in s.dependencies)
            ]
            if not ready:
                logger.error(
                    f"No runnable subtasks among {sorted(pending)}; dependencies form a cycle"
                )
                raise CircularDependencyError(list(pending), results)

            logger.debug(f"Hybrid batch: {[s.id for s in ready]}")
            for result in await self._run_parallel(ready, limit, context):
                results.append(result)
                pending.pop(result.subtask_id, None)
                (completed if result.success else failed).add(result.subtask_id)

        return results

    async def _settle_blocked(
        self, pending: Dict[str, Subtask], failed: Set[str]
    ) -> List[SubtaskResult]:
        """Fail, without running, every pending subtask that depends on a failure."""
        settled: List[SubtaskResult] = []
        changed = True
        while changed:
            changed = False
            for subtask in list(pending.values()):
                blocker = next((dep for dep in subtask.dependencies if dep in failed), None)
                if blocker is None:
                    continue
                error = f"Skipped: dependency {blocker} failed"
                subtask.mark_failed(error)
                result = SubtaskResult(subtask_id=subtask.id, success=False, error=error)
                settled.append(result)
                failed.add(subtask.id)
                del pending[subtask.id]
                changed = True
                logger.info(f"Subtask {subtask.id} skipped: dependency {blocker} failed")
                await self._notify("subtask_failed", subtask, result)
        return settled

    async def _execute_subtask(
        self, subtask: Subtask, context: DelegationContext
    ) -> SubtaskResult:
        """Run one subtask end to end. Never raises for executor failures."""
        entry = _ActiveSubtask(subtask=subtask, started=time.monotonic())
        subtask.mark_running()
        self._active[subtask.id] = entry
        await self._notify("subtask_started", subtask)

        try:
            entry.session = await asyncio.to_thread(self.work_sessions.create, subtask, context.parent_branch)
            prompt = self.build_prompt(subtask, context)
            options = SubmitOptions(
                working_dir=entry.session.working_dir,
                branch_name=entry.session.branch_name,
                labels=list(context.options.labels),
                create_pr=context.options.create_pr,
                require_review=context.options.require_review,
                timeout=context.options.timeout,
                metadata={"subtask_id": subtask.id, "work_item_key": context.work_item_key},
            )

            entry.handle = await self.executor.submit(prompt, options)
            subtask.result_handle = entry.handle.id
            logger.info(
                f"Subtask {subtask.id} ({subtask.required_agent_role.value}) "
                f"submitted as {entry.handle.id}"
            )

            if entry.cancelled.is_set():
                # cancel_all ran while submit was in flight
                self._request_cancel(entry.handle)
                outcome = None
            else:
                outcome = await self._await_or_cancel(entry, context.options.timeout)

            if outcome is None:
                result = self._failed_result(subtask.id, entry, CANCELLED_ERROR)
            else:
                result = self._to_subtask_result(subtask.id, entry, outcome)
        except Exception as e:
            logger.error(f"Subtask {subtask.id} raised during execution: {e}")
            result = self._failed_result(subtask.id, entry, str(e) or type(e).__name__)
        finally:
            self._active.pop(subtask.id, None)

        if entry.session is not None and not entry.cancelled.is_set():
            await self._release_session(entry.session)

        if entry.cancelled.is_set():
            # cancel_all already moved the subtask to failed
            if result.success:
                result = self._failed_result(subtask.id, entry, CANCELLED_ERROR)
            await self._notify("subtask_failed", subtask, result)
        elif result.success:
            subtask.mark_completed(result_handle=subtask.result_handle)
            logger.info(f"Subtask {subtask.id} completed in {result.duration_ms}ms")
            await self._notify("subtask_completed", subtask, result)
        else:
            subtask.mark_failed(result.error)
            logger.warning(f"Subtask {subtask.id} failed: {result.error}")
            await self._notify("subtask_failed", subtask, result)

        return result

    async def _await_or_cancel(
        self, entry: _ActiveSubtask, timeout: Optional[float]
    ) -> Optional[ExecutorResult]:
        """Wait for the executor, or return None as soon as the subtask is cancelled."""
        wait_task = asyncio.ensure_future(
            self.executor.await_result(entry.handle, poll_interval=self.poll_interval, timeout=timeout)
        )
        cancel_task = asyncio.ensure_future(entry.cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {wait_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not wait_task.done():
                wait_task.cancel()
                wait_task.add_done_callback(_discard_result)

        if wait_task in done:
            return wait_task.result()
        return None

    def cancel_all(self) -> int:
        """
        Cancel every running subtask and stop scheduling new ones.

        Running subtasks are marked failed immediately; executor cancellation
        requests are fired in the background so this returns without waiting
        on executor teardown. Safe to call repeatedly or with nothing running.

        Returns:
            Number of subtasks that were cancelled by this call
        """
        self._cancel_requested = True
        entries = list(self._active.values())
        self._active.clear()

        cancelled = 0
        for entry in entries:
            if entry.cancelled.is_set():
                continue
            entry.cancelled.set()
            if not entry.subtask.is_terminal:
                entry.subtask.mark_failed(CANCELLED_ERROR)
            if entry.handle is not None:
                self._request_cancel(entry.handle)
            cancelled += 1

        if cancelled:
            logger.info(f"Cancelled {cancelled} running subtask(s)")
        return cancelled

    def _request_cancel(self, handle: ExecutorHandle) -> None:
        task = asyncio.get_running_loop().create_task(self._cancel_handle(handle))
        self._cancel_tasks.add(task)
        task.add_done_callback(self._cancel_tasks.discard)

    async def _cancel_handle(self, handle: ExecutorHandle) -> None:
        try:
            await self.executor.cancel(handle)
        except Exception as e:
            log_and_ignore(e, f"Cancel request for {handle.id} failed", logger_instance=logger)

    def build_prompt(self, subtask: Subtask, context: DelegationContext) -> str:
        details = [
            f"## Parent Issue: {context.work_item_key} - {context.work_item_title}",
            "",
            "## Subtask Details",
            f"- **Title:** {subtask.title}",
            f"- **Description:** {subtask.description or 'No description provided'}",
            f"- **Agent Role:** {subtask.required_agent_role.value}",
            f"- **Priority:** {subtask.priority}/10",
            f"- **Complexity:** {subtask.complexity}/10",
        ]
        if subtask.dependencies:
            details.append(f"- **Builds on:** {', '.join(subtask.dependencies)}")
        if context.trigger_comment:
            details.extend(["", "## Additional Context from Comment", context.trigger_comment.strip()])

        task_text = subtask.title
        if subtask.description:
            task_text += f"\n\n{subtask.description}"
        return self.registry.build_prompt(subtask.required_agent_role, task_text, "\n".join(details))

    @staticmethod
    def _elapsed_ms(entry: _ActiveSubtask) -> int:
        return int((time.monotonic() - entry.started) * 1000)

    def _to_subtask_result(
        self, subtask_id: str, entry: _ActiveSubtask, outcome: ExecutorResult
    ) -> SubtaskResult:
        duration_ms = int(outcome.duration * 1000) if outcome.duration else self._elapsed_ms(entry)
        return SubtaskResult(
            subtask_id=subtask_id,
            success=outcome.success,
            output=outcome.output or None,
            error=None if outcome.success else (outcome.error or "Executor reported failure"),
            files_modified=list(outcome.files_changed),
            commits=list(outcome.commits),
            duration_ms=duration_ms,
            pr_url=outcome.pr_url,
        )

    def _failed_result(self, subtask_id: str, entry: _ActiveSubtask, error: str) -> SubtaskResult:
        return SubtaskResult(
            subtask_id=subtask_id,
            success=False,
            error=error,
            duration_ms=self._elapsed_ms(entry),
        )

    async def _release_session(self, session: WorkSession) -> None:
        try:
            await asyncio.to_thread(self.work_sessions.release, session)
        except Exception as e:
            log_and_ignore(e, f"Could not release work session {session.id}", logger_instance=logger)

    async def _notify(self, event: str, *args) -> None:
        for observer in self.observers:
            try:
                await getattr(observer, event)(*args)
            except Exception as e:
                log_and_ignore(
                    e,
                    f"Observer {type(observer).__name__}.{event} failed",
                    logger_instance=logger,
                )


def _discard_result(task: asyncio.Task) -> None:
    """Retrieve the outcome of an abandoned wait so it is never reported as unhandled."""
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned executor wait ended with: {task.exception()}")
