"""Isolated working context for a single subtask execution."""

import logging
import subprocess
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Optional

from ..utils.validators import slugify, validate_branch_name, validate_identifier
from .task import AgentRole, Subtask

logger = logging.getLogger(__name__)

# Roles that work on top of the parent branch instead of their own
SHARED_BRANCH_ROLES = frozenset({AgentRole.REVIEWER, AgentRole.DOCUMENTATION})

DEFAULT_ROOT = Path(".boss-agent") / "worktrees"


@dataclass
class WorkSession:
    """Fresh working context handed to the executor for one subtask."""
    id: str
    subtask_id: str
    branch_name: Optional[str]
    working_dir: Optional[Path]
    created_at: datetime


class WorkSessionFactory:
    """Creates one WorkSession per subtask execution.

    With a ``repository`` set, every session is a separate ``git worktree``
    under ``root`` checked out on the subtask's branch. The branch is derived
    from the parent branch and the subtask id unless the role shares the
    parent branch. A new branch starts from the branch of the subtask's first
    dependency when that exists, else from the parent branch, else from the
    repository HEAD.

    Without a repository no checkout is made and the executor runs in the
    current directory.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        repository: Optional[Path] = None,
        isolated_branches: bool = True,
    ):
        self.root = Path(root) if root is not None else DEFAULT_ROOT
        self.repository = Path(repository).resolve() if repository is not None else None
        self.isolated_branches = isolated_branches

    def create(self, subtask: Subtask, parent_branch: Optional[str] = None) -> WorkSession:
        """
        Raises:
            RuntimeError: the worktree could not be created
        """
        session_id = f"ws-{validate_identifier(subtask.id, 'subtask id')}-{uuid.uuid4().hex[:6]}"
        branch = self.branch_for(subtask, parent_branch)

        working_dir = None
        if self.repository is not None:
            working_dir = self._add_worktree(session_id, subtask, branch, parent_branch)

        logger.debug(f"Created work session {session_id} for {subtask.id} (branch {branch})")
        return WorkSession(
            id=session_id,
            subtask_id=subtask.id,
            branch_name=branch,
            working_dir=working_dir,
            created_at=datetime.now(UTC),
        )

    def release(self, session: WorkSession) -> bool:
        """Remove a session's worktree; its branch and commits stay.

        A worktree with uncommitted changes is kept so nothing is lost.
        """
        if session.working_dir is None or self.repository is None:
            return False
        try:
            self._run_git(["worktree", "remove", str(session.working_dir)])
        except subprocess.CalledProcessError as e:
            logger.warning(
                f"Keeping worktree {session.working_dir}: {e.stderr.decode(errors='replace').strip()}"
            )
            return False
        logger.debug(f"Removed worktree {session.working_dir}")
        return True

    def branch_for(self, subtask: Subtask, parent_branch: Optional[str]) -> Optional[str]:
        if parent_branch is None:
            return None
        if not self.isolated_branches or subtask.required_agent_role in SHARED_BRANCH_ROLES:
            return parent_branch
        return self._subtask_branch(subtask.id, parent_branch)

    @staticmethod
    def _subtask_branch(subtask_id: str, parent_branch: str) -> str:
        return validate_branch_name(f"{parent_branch}-{slugify(subtask_id, max_length=40)}")

    def _add_worktree(
        self, session_id: str, subtask: Subtask, branch: Optional[str], parent_branch: Optional[str]
    ) -> Path:
        path = (self.root / session_id).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        if branch is None:
            args = ["worktree", "add", "--detach", str(path), "HEAD"]
        elif self._branch_exists(branch):
            # --force: a shared parent branch may already be checked out by a sibling
            args = ["worktree", "add", "--force", str(path), branch]
        else:
            args = ["worktree", "add", "-b", branch, str(path), self._start_point(subtask, parent_branch)]

        try:
            self._run_git(args, timeout=60)
        except subprocess.CalledProcessError as e:
            raise RuntimeError(
                f"Could not create worktree for {subtask.id}: {e.stderr.decode(errors='replace').strip()}"
            ) from e

        logger.info(f"Created worktree: {path} (branch: {branch or 'detached'})")
        return path

    def _start_point(self, subtask: Subtask, parent_branch: Optional[str]) -> str:
        if parent_branch is None:
            return "HEAD"
        if self.isolated_branches:
            for dep in subtask.dependencies:
                candidate = self._subtask_branch(dep, parent_branch)
                if self._branch_exists(candidate):
                    return candidate
        if self._branch_exists(parent_branch):
            return parent_branch
        return "HEAD"

    def _branch_exists(self, branch: str) -> bool:
        result = self._run_git(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], check=False)
        return result.returncode == 0

    def _run_git(self, args: List[str], check: bool = True, timeout: int = 30) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git"] + args,
            cwd=self.repository,
            check=check,
            capture_output=True,
            timeout=timeout,
        )
