"""Tests for the JIRA work-item source."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from boss_agent.core.config import JIRAConfig
from boss_agent.core.task import DelegationResult, ExecutionResult, ExecutionStatus, PriorityTier
from boss_agent.integrations.jira.client import JIRAWorkItemSource, priority_from_name


def _make_issue(key="PROJ-7", summary="Add dark mode", priority="High", description="Theme toggle", labels=None):
    fields = SimpleNamespace(
        summary=summary,
        description=description,
        priority=SimpleNamespace(name=priority) if priority else None,
        labels=labels or ["frontend"],
    )
    return SimpleNamespace(id="20007", key=key, fields=fields)


@pytest.fixture
def jira():
    return MagicMock()


@pytest.fixture
def source(jira):
    config = JIRAConfig(server="https://example.atlassian.net/", project="PROJ", max_results=5)
    return JIRAWorkItemSource(config, jira=jira)


class TestPriorityMapping:
    @pytest.mark.parametrize("name,expected", [
        ("Blocker", PriorityTier.CRITICAL),
        ("Highest", PriorityTier.CRITICAL),
        ("Major", PriorityTier.HIGH),
        (" medium ", PriorityTier.MEDIUM),
        ("Trivial", PriorityTier.LOW),
        ("Unheard-of", None),
        (None, None),
    ])
    def test_names(self, name, expected):
        assert priority_from_name(name) == expected


class TestWorkItems:
    def test_get_work_item(self, source, jira):
        jira.issue.return_value = _make_issue()

        item = source.get_work_item("PROJ-7")

        jira.issue.assert_called_once_with("PROJ-7", fields="summary,description,priority,labels,issuetype")
        assert item.id == "20007"
        assert item.key == "PROJ-7"
        assert item.title == "Add dark mode"
        assert item.description == "Theme toggle"
        assert item.priority_hint == PriorityTier.HIGH
        assert item.labels == ["frontend"]
        assert item.url == "https://example.atlassian.net/browse/PROJ-7"

    def test_missing_priority_and_description(self, source):
        item = source.issue_to_work_item(_make_issue(priority=None, description=""))
        assert item.priority_hint is None
        assert item.description is None

    def test_pull_triggered_default_query(self, source, jira):
        jira.search_issues.return_value = [_make_issue("PROJ-1"), _make_issue("PROJ-2")]

        items = source.pull_triggered()

        kwargs = jira.search_issues.call_args.kwargs
        assert kwargs["jql_str"].startswith("project = PROJ AND statusCategory != Done")
        assert kwargs["maxResults"] == 5
        assert [i.key for i in items] == ["PROJ-1", "PROJ-2"]

    def test_pull_triggered_custom_query(self, source, jira):
        jira.search_issues.return_value = []
        source.pull_triggered(jql="labels = boss", max_results=2)
        assert jira.search_issues.call_args.kwargs["jql_str"] == "labels = boss"
        assert jira.search_issues.call_args.kwargs["maxResults"] == 2

    def test_malformed_issue_is_skipped(self, source, jira):
        broken = SimpleNamespace(id="1", key="PROJ-9", fields=SimpleNamespace(summary=None))
        jira.search_issues.return_value = [broken, _make_issue("PROJ-2")]

        items = source.pull_triggered()

        assert [i.key for i in items] == ["PROJ-2"]


class TestReporting:
    def test_report_result_posts_summary(self, source, jira):
        result = ExecutionResult(
            run_id="boss-1",
            work_item_id="20007",
            status=ExecutionStatus.FAILED,
            error="1 subtask(s) failed",
            result=DelegationResult(success=False, summary="⚠️ **0/1 subtasks completed successfully**"),
            started_at=datetime.now(UTC),
        )

        source.report_result("PROJ-7", result)

        key, body = jira.add_comment.call_args.args
        assert key == "PROJ-7"
        assert body.startswith("Boss agent run boss-1 finished: failed")
        assert "Error: 1 subtask(s) failed" in body
        assert "0/1 subtasks completed" in body
