"""Session store interface and the default in-memory implementation."""

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..core.task import SessionStatus, TaskSession, TaskSessionError, TaskSessionResult
from ..errors import SessionConflictError
from ..utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)


class TaskSessionStore(ABC):
    """Durable index of task sessions, keyed by run id with a work-item index.

    Lookups for unknown ids return None; updates for unknown ids return False.
    """

    @abstractmethod
    async def save(self, session: TaskSession) -> None:
        """Insert or replace a session.

        Raises:
            SessionConflictError: another active run already owns the work item
        """

    @abstractmethod
    async def get_by_run_id(self, run_id: str) -> Optional[TaskSession]:
        ...

    @abstractmethod
    async def get_by_work_item_id(self, work_item_id: str) -> Optional[TaskSession]:
        ...

    @abstractmethod
    async def list_active(self) -> List[TaskSession]:
        ...

    @abstractmethod
    async def list_all(self) -> List[TaskSession]:
        ...

    @abstractmethod
    async def update_status(self, run_id: str, status: SessionStatus) -> bool:
        ...

    @abstractmethod
    async def update_progress(
        self, run_id: str, progress: int, current_step: Optional[str] = None
    ) -> bool:
        ...

    @abstractmethod
    async def update_result(self, run_id: str, result: TaskSessionResult) -> bool:
        ...

    @abstractmethod
    async def update_error(self, run_id: str, error: TaskSessionError) -> bool:
        ...

    @abstractmethod
    async def delete(self, run_id: str) -> bool:
        ...

    @abstractmethod
    async def cleanup(self, max_age_hours: float) -> int:
        """Delete terminal sessions not updated for ``max_age_hours``; return the count."""


def _touch(session: TaskSession) -> None:
    """Advance last_updated_at, strictly, even when the clock has not moved."""
    now = datetime.now(UTC)
    if now <= session.last_updated_at:
        now = session.last_updated_at + timedelta(microseconds=1)
    session.last_updated_at = now


class InMemoryTaskSessionStore(TaskSessionStore):
    """
    Dict-backed store with one asyncio lock per key.

    Every read-modify-write on a run holds that run's lock, so updates to
    different runs never wait on each other. Saves additionally hold the work
    item's lock to keep the secondary index one-to-one. Callers get copies;
    the stored objects are only mutated under their lock.
    """

    def __init__(self):
        self._sessions: Dict[str, TaskSession] = {}
        self._by_work_item: Dict[str, str] = {}
        self._locks = KeyedLock()

    @staticmethod
    def _run_key(run_id: str) -> str:
        return f"run:{run_id}"

    @staticmethod
    def _work_item_key(work_item_id: str) -> str:
        return f"work-item:{work_item_id}"

    # Hooks for persistent subclasses
    def _persist(self, session: TaskSession) -> None:
        pass

    def _forget(self, run_id: str) -> None:
        pass

    async def save(self, session: TaskSession) -> None:
        async with self._locks.hold(self._work_item_key(session.work_item_id)):
            async with self._locks.hold(self._run_key(session.run_id)):
                previous_run = self._by_work_item.get(session.work_item_id)
                if previous_run and previous_run != session.run_id:
                    previous = self._sessions.get(previous_run)
                    if previous is not None and previous.status == SessionStatus.ACTIVE:
                        raise SessionConflictError(session.work_item_id, previous_run)
                    # A finished run is replaced by the new one
                    self._drop(previous_run)
                    logger.debug(f"Replaced finished run {previous_run} for {session.work_item_id}")

                existing = self._sessions.get(session.run_id)
                if existing is not None and existing.work_item_id != session.work_item_id:
                    self._by_work_item.pop(existing.work_item_id, None)

                stored = session.model_copy(deep=True)
                if existing is not None:
                    stored.last_updated_at = existing.last_updated_at
                    _touch(stored)
                self._persist(stored)
                self._sessions[stored.run_id] = stored
                self._by_work_item[stored.work_item_id] = stored.run_id

    async def get_by_run_id(self, run_id: str) -> Optional[TaskSession]:
        session = self._sessions.get(run_id)
        return session.model_copy(deep=True) if session else None

    async def get_by_work_item_id(self, work_item_id: str) -> Optional[TaskSession]:
        run_id = self._by_work_item.get(work_item_id)
        return await self.get_by_run_id(run_id) if run_id else None

    async def list_active(self) -> List[TaskSession]:
        return [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if s.status == SessionStatus.ACTIVE
        ]

    async def list_all(self) -> List[TaskSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    async def _mutate(self, run_id: str, change: Callable[[TaskSession], None]) -> bool:
        async with self._locks.hold(self._run_key(run_id)):
            session = self._sessions.get(run_id)
            if session is None:
                return False
            # Persist a changed copy; the stored session is only swapped once the write succeeds
            updated = session.model_copy(deep=True)
            change(updated)
            _touch(updated)
            self._persist(updated)
            self._sessions[run_id] = updated
            return True

    async def update_status(self, run_id: str, status: SessionStatus) -> bool:
        def change(session: TaskSession) -> None:
            session.status = status
        return await self._mutate(run_id, change)

    async def update_progress(
        self, run_id: str, progress: int, current_step: Optional[str] = None
    ) -> bool:
        def change(session: TaskSession) -> None:
            session.progress = max(0, min(100, int(progress)))
            if current_step is not None:
                session.current_step = current_step
        return await self._mutate(run_id, change)

    async def update_result(self, run_id: str, result: TaskSessionResult) -> bool:
        def change(session: TaskSession) -> None:
            session.result = result.model_copy(deep=True)
        return await self._mutate(run_id, change)

    async def update_error(self, run_id: str, error: TaskSessionError) -> bool:
        def change(session: TaskSession) -> None:
            session.error = error.model_copy(deep=True)
        return await self._mutate(run_id, change)

    async def delete(self, run_id: str) -> bool:
        async with self._locks.hold(self._run_key(run_id)):
            return self._drop(run_id)

    def _drop(self, run_id: str) -> bool:
        session = self._sessions.pop(run_id, None)
        if session is None:
            return False
        if self._by_work_item.get(session.work_item_id) == run_id:
            del self._by_work_item[session.work_item_id]
        self._forget(run_id)
        return True

    async def cleanup(self, max_age_hours: float) -> int:
        cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
        candidates = [
            s.run_id for s in self._sessions.values()
            if s.status.is_terminal and s.last_updated_at < cutoff
        ]

        removed = 0
        for run_id in candidates:
            async with self._locks.hold(self._run_key(run_id)):
                # Re-check under the lock: an update may have landed meanwhile
                session = self._sessions.get(run_id)
                if session is None or not session.status.is_terminal:
                    continue
                if session.last_updated_at >= cutoff:
                    continue
                self._drop(run_id)
                removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} session(s) older than {max_age_hours}h")
        return removed
