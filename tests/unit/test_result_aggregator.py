"""Tests for ResultAggregator."""

import pytest

from boss_agent.core.result_aggregator import ResultAggregator, format_duration
from boss_agent.core.task import AgentRole, GitCommit, SubtaskResult
from tests.unit.delegation_fixtures import _make_subtask


def _result(subtask_id, success=True, files=(), commits=(), duration_ms=1000, **overrides):
    return SubtaskResult(
        subtask_id=subtask_id,
        success=success,
        files_modified=list(files),
        commits=[GitCommit(hash=h, message=f"commit {h}") for h in commits],
        duration_ms=duration_ms,
        **overrides,
    )


@pytest.fixture
def aggregator():
    return ResultAggregator()


class TestAggregate:
    def test_dedupes_files_and_commits_in_first_seen_order(self, aggregator):
        subtasks = [_make_subtask("a"), _make_subtask("b")]
        results = [
            _result("a", files=["src/x.py", "README.md"], commits=["c1", "c2"]),
            _result("b", files=["README.md", "src/y.py"], commits=["c2", "c3"]),
        ]

        merged = aggregator.aggregate(subtasks, results)

        assert merged.files_modified == ["src/x.py", "README.md", "src/y.py"]
        assert [c.hash for c in merged.commits] == ["c1", "c2", "c3"]
        assert merged.total_duration_ms == 2000
        assert merged.success is True
        assert merged.failed_subtasks == []

    def test_any_failure_fails_the_whole(self, aggregator):
        subtasks = [_make_subtask("a"), _make_subtask("b")]
        merged = aggregator.aggregate(subtasks, [_result("a"), _result("b", success=False, error="boom")])

        assert merged.success is False
        assert merged.failed_subtasks == ["b"]

    def test_empty_results_succeed(self, aggregator):
        merged = aggregator.aggregate([], [])
        assert merged.success is True
        assert merged.subtask_results == []

    def test_is_deterministic(self, aggregator):
        subtasks = [_make_subtask("a")]
        results = [_result("a", files=["f.py"], commits=["c1"])]
        assert aggregator.aggregate(subtasks, results) == aggregator.aggregate(subtasks, results)


class TestSummary:
    def test_all_succeeded(self, aggregator):
        subtasks = [_make_subtask("a", title="Implement login", required_agent_role=AgentRole.CODE_WRITER)]

        summary = aggregator.aggregate(
            subtasks, [_result("a", files=["login.py"], commits=["abcdef123"], pr_url="https://github.com/a/b/pull/1")]
        ).summary

        assert summary.startswith("✅ **All subtasks completed successfully**")
        assert "✅ **Implement login** (code_writer) - 1s" in summary
        assert "   PR: https://github.com/a/b/pull/1" in summary
        assert "## Files Modified\n\n- login.py" in summary
        assert "- abcdef1 commit abcdef123" in summary
        assert "- Subtasks: 1 succeeded, 0 failed, 0 not started" in summary

    def test_partial_run_lists_failures_and_unstarted(self, aggregator):
        subtasks = [_make_subtask("a"), _make_subtask("b"), _make_subtask("c", title="Review it")]
        results = [_result("a"), _result("b", success=False, error="tests failed")]

        summary = aggregator.aggregate(subtasks, results).summary

        assert summary.startswith("⚠️ **1/3 subtasks completed successfully**")
        assert "❌ **Subtask b** (general)" in summary
        assert "   Error: tests failed" in summary
        assert "## Not Started\n\n- Review it" in summary
        assert "- Subtasks: 1 succeeded, 1 failed, 1 not started" in summary

    def test_long_file_lists_are_truncated(self, aggregator):
        files = [f"src/f{i}.py" for i in range(25)]
        summary = aggregator.aggregate([_make_subtask("a")], [_result("a", files=files)]).summary
        assert "- ... and 5 more" in summary
        assert "- Files modified: 25" in summary


class TestFormatDuration:
    @pytest.mark.parametrize("ms,expected", [
        (0, "0s"),
        (999, "0s"),
        (45_000, "45s"),
        (125_000, "2m 5s"),
        (3_720_000, "1h 2m"),
        (-5, "0s"),
    ])
    def test_format(self, ms, expected):
        assert format_duration(ms) == expected
