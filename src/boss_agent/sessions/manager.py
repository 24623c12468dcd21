"""Task session lifecycle: the run id <-> work item id index with status tracking."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..core.config import SessionConfig
from ..core.task import (
    DelegateTarget,
    SessionStatus,
    Strategy,
    TaskSession,
    TaskSessionError,
    TaskSessionResult,
    WorkItem,
)
from ..utils.error_handling import log_and_ignore
from .file_store import FileTaskSessionStore
from .store import InMemoryTaskSessionStore, TaskSessionStore

logger = logging.getLogger(__name__)


class TaskSessionManager:
    """
    Owns the lifecycle of TaskSession records.

    After ``create_session(run_id, item)`` both ``get_session_by_run_id`` and
    ``get_session_by_work_item_id`` resolve to the same session until it is
    deleted or replaced by a newer run for the same work item.

    Progress is clamped to 0..100 but is not required to increase: a later
    report may name a different step at the same or lower percentage.
    """

    def __init__(self, store: Optional[TaskSessionStore] = None):
        self.store = store or InMemoryTaskSessionStore()
        self._cleanup_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: SessionConfig) -> "TaskSessionManager":
        """Manager backed by the store kind named in the sessions config."""
        if config.store == "file":
            return cls(FileTaskSessionStore(config.directory))
        return cls(InMemoryTaskSessionStore())

    async def create_session(
        self,
        run_id: str,
        work_item: WorkItem,
        delegated_to: Optional[DelegateTarget] = None,
        strategy: Optional[Strategy] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TaskSession:
        """Register a new active run for a work item.

        Raises:
            SessionConflictError: the work item already has an active run
        """
        session = TaskSession(
            run_id=run_id,
            work_item_id=work_item.id,
            work_item_label=work_item.key,
            title=work_item.title,
            delegated_to=delegated_to,
            strategy=strategy,
            metadata=metadata or {},
        )
        await self.store.save(session)
        logger.info(
            f"Created session {run_id} for {work_item.key} "
            f"(delegated to {delegated_to.value if delegated_to else 'n/a'}, "
            f"strategy {strategy.value if strategy else 'n/a'})"
        )
        return session

    async def get_session_by_run_id(self, run_id: str) -> Optional[TaskSession]:
        return await self.store.get_by_run_id(run_id)

    async def get_session_by_work_item_id(self, work_item_id: str) -> Optional[TaskSession]:
        return await self.store.get_by_work_item_id(work_item_id)

    async def list_active_sessions(self) -> List[TaskSession]:
        return await self.store.list_active()

    async def list_all_sessions(self) -> List[TaskSession]:
        return await self.store.list_all()

    async def update_progress(
        self, run_id: str, progress: int, current_step: Optional[str] = None
    ) -> bool:
        clamped = max(0, min(100, int(progress)))
        updated = await self.store.update_progress(run_id, clamped, current_step)
        if updated:
            logger.debug(f"Session {run_id} progress {clamped}% ({current_step or '-'})")
        return updated

    async def mark_completed(
        self, run_id: str, result: Optional[TaskSessionResult] = None
    ) -> bool:
        if result is not None:
            await self.store.update_result(run_id, result)
        updated = await self.store.update_status(run_id, SessionStatus.COMPLETED)
        if updated:
            logger.info(f"Session {run_id} completed")
        return updated

    async def mark_failed(self, run_id: str, error: TaskSessionError) -> bool:
        await self.store.update_error(run_id, error)
        updated = await self.store.update_status(run_id, SessionStatus.FAILED)
        if updated:
            logger.error(f"Session {run_id} failed: {error.message}")
        return updated

    async def mark_cancelled(self, run_id: str) -> bool:
        updated = await self.store.update_status(run_id, SessionStatus.CANCELLED)
        if updated:
            logger.warning(f"Session {run_id} cancelled")
        return updated

    async def delete_session(self, run_id: str) -> bool:
        deleted = await self.store.delete(run_id)
        if deleted:
            logger.info(f"Deleted session {run_id}")
        return deleted

    async def cleanup(self, max_age_hours: float) -> int:
        """Remove terminal sessions idle for longer than ``max_age_hours``."""
        return await self.store.cleanup(max_age_hours)

    def start_auto_cleanup(self, interval_hours: float = 24, max_age_hours: float = 168) -> None:
        """Run ``cleanup`` every ``interval_hours`` on the current event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            logger.warning("Auto cleanup already started")
            return

        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(interval_hours * 3600, max_age_hours)
        )
        logger.info(f"Auto cleanup started (every {interval_hours}h, max age {max_age_hours}h)")

    async def _cleanup_loop(self, interval_seconds: float, max_age_hours: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.cleanup(max_age_hours)
            except Exception as e:
                log_and_ignore(e, "Auto cleanup failed", logger_instance=logger)

    async def stop_auto_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.info("Auto cleanup stopped")

    @property
    def auto_cleanup_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def get_statistics(self) -> Dict[str, Any]:
        sessions = await self.store.list_all()
        counts = {status.value: 0 for status in SessionStatus}
        for session in sessions:
            counts[session.status.value] += 1

        durations = [
            s.result.duration_ms for s in sessions
            if s.status == SessionStatus.COMPLETED and s.result is not None
        ]
        finished = counts["completed"] + counts["failed"]

        return {
            "total": len(sessions),
            **counts,
            "average_duration_ms": int(sum(durations) / len(durations)) if durations else 0,
            "success_rate": counts["completed"] / finished if finished else 0.0,
        }
