"""Executor that accepts every submission and reports success without doing work."""

import asyncio
import logging
import uuid
from typing import Dict, Optional

from .base import ExecutorAdapter, ExecutorHandle, ExecutorResult, SubmitOptions

logger = logging.getLogger(__name__)


class DryRunExecutor(ExecutorAdapter):
    """Records prompts and returns an immediate successful result.

    Useful for previewing a run end to end from the CLI.
    """

    name = "dry_run"

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.prompts: Dict[str, str] = {}
        self._cancelled: set = set()

    async def submit(self, prompt: str, options: SubmitOptions) -> ExecutorHandle:
        handle = ExecutorHandle(id=f"dry-{uuid.uuid4().hex[:8]}", metadata={"branch": options.branch_name})
        self.prompts[handle.id] = prompt
        logger.info(f"[dry-run] accepted {handle.id} ({len(prompt)} chars, branch {options.branch_name})")
        return handle

    async def await_result(
        self,
        handle: ExecutorHandle,
        poll_interval: float = 30.0,
        timeout: Optional[float] = None,
    ) -> ExecutorResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if handle.id in self._cancelled:
            return ExecutorResult(success=False, error="Cancelled", duration=self.delay)
        return ExecutorResult(
            success=True,
            output=f"[dry-run] no changes made for {handle.id}",
            duration=self.delay,
        )

    async def cancel(self, handle: ExecutorHandle) -> bool:
        if handle.id not in self.prompts or handle.id in self._cancelled:
            return False
        self._cancelled.add(handle.id)
        return True
