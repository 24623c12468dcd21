"""Merges per-subtask results into a single DelegationResult."""

import logging
from typing import Dict, List, Sequence

from .task import DelegationResult, GitCommit, Subtask, SubtaskResult

logger = logging.getLogger(__name__)

MAX_LISTED_FILES = 20
MAX_LISTED_COMMITS = 10


def format_duration(ms: int) -> str:
    """Render milliseconds as ``Xh Ym``, ``Xm Ys`` or ``Xs``."""
    seconds = max(0, ms) // 1000
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class ResultAggregator:
    """Pure merge of subtask results; the same inputs always give the same output."""

    def aggregate(
        self, subtasks: Sequence[Subtask], results: Sequence[SubtaskResult]
    ) -> DelegationResult:
        files = self._dedupe_files(results)
        commits = self._dedupe_commits(results)
        failed = [r.subtask_id for r in results if not r.success]
        success = not failed
        total_ms = sum(r.duration_ms for r in results)

        summary = self.build_summary(subtasks, results, files, commits, total_ms)
        logger.debug(
            f"Aggregated {len(results)} result(s): {len(results) - len(failed)} succeeded, "
            f"{len(files)} file(s), {len(commits)} commit(s)"
        )
        return DelegationResult(
            success=success,
            subtask_results=list(results),
            files_modified=files,
            commits=commits,
            total_duration_ms=total_ms,
            failed_subtasks=failed,
            summary=summary,
        )

    @staticmethod
    def _dedupe_files(results: Sequence[SubtaskResult]) -> List[str]:
        seen: Dict[str, None] = {}
        for result in results:
            for path in result.files_modified:
                seen.setdefault(path, None)
        return list(seen)

    @staticmethod
    def _dedupe_commits(results: Sequence[SubtaskResult]) -> List[GitCommit]:
        by_hash: Dict[str, GitCommit] = {}
        for result in results:
            for commit in result.commits:
                by_hash.setdefault(commit.hash, commit)
        return list(by_hash.values())

    def build_summary(
        self,
        subtasks: Sequence[Subtask],
        results: Sequence[SubtaskResult],
        files: List[str],
        commits: List[GitCommit],
        total_ms: int,
    ) -> str:
        by_id = {s.id: s for s in subtasks}
        succeeded = sum(1 for r in results if r.success)
        total = len(subtasks) or len(results)

        lines: List[str] = []
        if results and succeeded == len(results) == total:
            lines.append("✅ **All subtasks completed successfully**")
        else:
            lines.append(f"⚠️ **{succeeded}/{total} subtasks completed successfully**")

        lines += ["", "## Subtask Results", ""]
        for result in results:
            subtask = by_id.get(result.subtask_id)
            title = subtask.title if subtask else result.subtask_id
            role = subtask.required_agent_role.value if subtask else "unknown"
            icon = "✅" if result.success else "❌"
            lines.append(f"{icon} **{title}** ({role}) - {format_duration(result.duration_ms)}")
            if result.error:
                lines.append(f"   Error: {result.error}")
            if result.files_modified:
                lines.append(f"   Modified {len(result.files_modified)} file(s)")
            if result.commits:
                lines.append(f"   Made {len(result.commits)} commit(s)")
            if result.pr_url:
                lines.append(f"   PR: {result.pr_url}")

        not_run = [s for s in subtasks if s.id not in {r.subtask_id for r in results}]
        if not_run:
            lines += ["", "## Not Started", ""]
            lines += [f"- {s.title}" for s in not_run]

        if files:
            lines += ["", "## Files Modified", ""]
            lines += [f"- {path}" for path in files[:MAX_LISTED_FILES]]
            if len(files) > MAX_LISTED_FILES:
                lines.append(f"- ... and {len(files) - MAX_LISTED_FILES} more")

        if commits:
            lines += ["", "## Commits", ""]
            lines += [f"- {c.hash[:7]} {c.message}" for c in commits[:MAX_LISTED_COMMITS]]
            if len(commits) > MAX_LISTED_COMMITS:
                lines.append(f"- ... and {len(commits) - MAX_LISTED_COMMITS} more")

        lines += [
            "",
            "## Summary",
            "",
            f"- Subtasks: {succeeded} succeeded, {len(results) - succeeded} failed, {len(not_run)} not started",
            f"- Files modified: {len(files)}",
            f"- Commits: {len(commits)}",
            f"- Total time: {format_duration(total_ms)}",
        ]
        return "\n".join(lines)
