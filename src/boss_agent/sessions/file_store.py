"""File-backed session store: one JSON document per run."""

import logging
from pathlib import Path

from pydantic import ValidationError

from ..core.task import TaskSession
from ..utils.atomic_io import atomic_write_model
from ..utils.error_handling import handle_filesystem_errors
from ..utils.validators import validate_identifier
from .store import InMemoryTaskSessionStore

logger = logging.getLogger(__name__)


class FileTaskSessionStore(InMemoryTaskSessionStore):
    """
    Keeps the in-memory index authoritative and mirrors every change to disk.

    Sessions live in ``<directory>/<run_id>.json``. The work-item index is
    rebuilt from those files on construction, so a restarted process sees
    the runs of the previous one.
    """

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._load()

    def _path(self, run_id: str) -> Path:
        return self.directory / f"{validate_identifier(run_id, 'run id')}.json"

    @handle_filesystem_errors("load sessions", logger_instance=logger)
    def _load(self) -> None:
        for path in sorted(self.directory.glob("*.json")):
            try:
                session = TaskSession.model_validate_json(path.read_text())
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping unreadable session file {path.name}: {e}")
                continue

            # Keep the most recently updated run when two files claim one work item
            current_run = self._by_work_item.get(session.work_item_id)
            if current_run is not None:
                current = self._sessions[current_run]
                if current.last_updated_at >= session.last_updated_at:
                    continue
                del self._sessions[current_run]

            self._sessions[session.run_id] = session
            self._by_work_item[session.work_item_id] = session.run_id

        if self._sessions:
            logger.info(f"Loaded {len(self._sessions)} session(s) from {self.directory}")

    @handle_filesystem_errors("write session", logger_instance=logger)
    def _persist(self, session: TaskSession) -> None:
        atomic_write_model(self._path(session.run_id), session)

    @handle_filesystem_errors("delete session", logger_instance=logger)
    def _forget(self, run_id: str) -> None:
        self._path(run_id).unlink(missing_ok=True)
